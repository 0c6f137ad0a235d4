"""
Idempotent thread publisher.

A run is posted at most once: the publish step holds an exclusive per-run
lock, and a publish.json that already carries tweet ids short-circuits every
later call without validation or network traffic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from ..artifact.store import RunStore
from ..errors import PublishInProgressError, RunLockedError
from .client import XClient
from .gate import PublishValidationError, validate_for_publish

logger = logging.getLogger(__name__)

LOCK_NAME = "publish"


@dataclass
class PublishThreadResult:
    run_id: str
    dry_run: bool
    is_publishable: bool
    errors: list[PublishValidationError] | None = None
    parts: list[str] | None = None
    tweet_ids: list[str] | None = None

    @property
    def published(self) -> bool:
        return bool(self.tweet_ids)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "runId": self.run_id,
            "dryRun": self.dry_run,
            "isPublishable": self.is_publishable,
        }
        if self.errors is not None:
            result["errors"] = [e.to_dict() for e in self.errors]
        if self.parts is not None:
            result["payload"] = {"parts": list(self.parts)}
        if self.tweet_ids is not None:
            result["tweetIds"] = list(self.tweet_ids)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublishThreadResult:
        errors = data.get("errors")
        payload = data.get("payload")
        tweet_ids = data.get("tweetIds")
        return cls(
            run_id=str(data.get("runId", "")),
            dry_run=bool(data.get("dryRun", False)),
            is_publishable=bool(data.get("isPublishable", False)),
            errors=[PublishValidationError.from_dict(e) for e in errors] if errors is not None else None,
            parts=list(payload.get("parts", [])) if isinstance(payload, dict) else None,
            tweet_ids=[str(t) for t in tweet_ids] if tweet_ids is not None else None,
        )


ClientFactory = Callable[[], XClient]


def publish_thread(
    run_id: str,
    dry_run: bool = False,
    *,
    store: RunStore,
    client: XClient | ClientFactory | None = None,
) -> PublishThreadResult:
    """
    Publish a persisted run as a thread.

    Args:
        run_id: Run to publish
        dry_run: Validate and persist the payload without posting
        store: Run store holding the run
        client: XClient, or a zero-argument factory called only when a post
            is actually needed (so dry runs and blocked runs need no credentials)

    Returns:
        PublishThreadResult (also persisted to publish.json)

    Raises:
        PublishInProgressError: another publisher holds the lock for this run
        RunNotFoundError: the run does not exist
        PublishHTTPError / PublishProtocolError: posting failed
    """
    try:
        with store.exclusive_lock(run_id, LOCK_NAME):
            return _publish_locked(run_id, dry_run, store, client)
    except RunLockedError as e:
        raise PublishInProgressError(run_id) from e


def _publish_locked(
    run_id: str,
    dry_run: bool,
    store: RunStore,
    client: XClient | ClientFactory | None,
) -> PublishThreadResult:
    existing = store.read_publish_result(run_id)
    if existing and existing.get("tweetIds"):
        logger.info("run %s already published; returning recorded result", run_id)
        return PublishThreadResult.from_dict(existing)

    artifacts = store.load_run_artifacts(run_id)
    validation = validate_for_publish(artifacts)

    if not validation.is_publishable:
        blocked = PublishThreadResult(
            run_id=run_id,
            dry_run=dry_run,
            is_publishable=False,
            errors=list(validation.errors),
        )
        store.write_publish_result(run_id, blocked.to_dict())
        logger.warning("run %s blocked: %s", run_id, ", ".join(e.code for e in validation.errors))
        return blocked

    parts = list(artifacts.generated_thread)

    if dry_run:
        result = PublishThreadResult(run_id=run_id, dry_run=True, is_publishable=True, parts=parts)
        store.write_publish_result(run_id, result.to_dict())
        logger.info("run %s dry run: %d part(s) staged", run_id, len(parts))
        return result

    if client is None:
        raise ValueError("A client is required to publish")
    x_client = client if hasattr(client, "post_thread") else client()

    tweet_ids = x_client.post_thread(parts)
    result = PublishThreadResult(
        run_id=run_id,
        dry_run=False,
        is_publishable=True,
        parts=parts,
        tweet_ids=tweet_ids,
    )
    store.write_publish_result(run_id, result.to_dict())
    logger.info("run %s published: %s", run_id, ", ".join(tweet_ids))
    return result
