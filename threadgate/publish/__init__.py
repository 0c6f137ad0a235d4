"""Publishing: second-stage gate, signed client, idempotent publisher."""

from .client import HttpResponse, XClient, urllib_transport, with_retries
from .gate import PublishValidationError, PublishValidationResult, validate_for_publish
from .publisher import PublishThreadResult, publish_thread

__all__ = [
    "HttpResponse",
    "PublishThreadResult",
    "PublishValidationError",
    "PublishValidationResult",
    "XClient",
    "publish_thread",
    "urllib_transport",
    "validate_for_publish",
    "with_retries",
]
