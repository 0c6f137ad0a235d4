"""
X (Twitter) v2 tweets client: signed POSTs, reply chains, bounded retries.

HTTP goes through a small transport callable so tests can substitute a fake.
The default transport uses urllib with an explicit timeout.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence, TypeVar
from urllib.error import HTTPError
from urllib.request import Request, urlopen

from ..config import X_TWEETS_URL, Settings
from ..errors import PublishCancelledError, PublishHTTPError, PublishProtocolError
from .oauth import build_oauth_header
from .secrets import OAuthCredentials, SecretsProvider, resolve_credentials

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class HttpResponse:
    status: int
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class Transport(Protocol):
    def __call__(self, method: str, url: str, headers: dict[str, str], body: bytes, timeout: float) -> HttpResponse:
        ...


def urllib_transport(method: str, url: str, headers: dict[str, str], body: bytes, timeout: float) -> HttpResponse:
    """Send one request. Non-2xx statuses are returned, connection errors raise."""
    req = Request(url, data=body, method=method, headers=headers)
    try:
        with urlopen(req, timeout=timeout) as resp:
            return HttpResponse(status=resp.status, body=resp.read())
    except HTTPError as e:
        return HttpResponse(status=e.code, body=e.read() or b"")


def with_retries(
    operation: Callable[[], T],
    *,
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    sleep: Callable[[float], None] = time.sleep,
    cancel_event: threading.Event | None = None,
) -> T:
    """
    Run `operation`, retrying on HTTP 429 and 5xx only.

    The delay before retry n is base_delay_ms * 2**(n-1). Any other error,
    and a retryable one after `max_retries` retries, propagates unchanged.

    Raises:
        PublishCancelledError: `cancel_event` was set before an attempt or sleep
    """
    attempt = 0
    while True:
        if cancel_event is not None and cancel_event.is_set():
            raise PublishCancelledError("Publish cancelled before attempt")
        try:
            return operation()
        except PublishHTTPError as e:
            attempt += 1
            if attempt > max_retries or not e.retryable:
                raise
            delay_ms = base_delay_ms * 2 ** (attempt - 1)
            logger.warning("X API returned %d, retry %d/%d in %d ms", e.status, attempt, max_retries, delay_ms)
            if cancel_event is not None and cancel_event.is_set():
                raise PublishCancelledError("Publish cancelled during backoff") from e
            sleep(delay_ms / 1000)


class XClient:
    """Posts tweets and linear reply-chain threads with OAuth 1.0a user context."""

    def __init__(
        self,
        credentials: OAuthCredentials,
        api_url: str = X_TWEETS_URL,
        transport: Transport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_retries: int = 3,
        base_delay_ms: int = 1000,
        timeout_s: float = 15.0,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._credentials = credentials
        self.api_url = api_url
        self._transport = transport or urllib_transport
        self._sleep = sleep
        self.max_retries = max_retries
        self.base_delay_ms = base_delay_ms
        self.timeout_s = timeout_s
        self.cancel_event = cancel_event

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: SecretsProvider | None = None,
        **kwargs,
    ) -> XClient:
        """Build a client from settings, resolving credential references."""
        return cls(
            resolve_credentials(settings.credentials, provider),
            api_url=settings.x_api_url,
            max_retries=settings.max_retries,
            base_delay_ms=settings.base_delay_ms,
            timeout_s=settings.http_timeout_s,
            **kwargs,
        )

    def post_tweet(self, text: str, reply_to_id: str | None = None) -> str:
        """
        Post one tweet and return its id.

        Raises:
            PublishHTTPError: non-2xx response
            PublishProtocolError: 2xx response without data.id
        """
        payload: dict = {"text": text}
        if reply_to_id:
            payload["reply"] = {"in_reply_to_tweet_id": reply_to_id}

        headers = {
            "Authorization": build_oauth_header("POST", self.api_url, self._credentials),
            "Content-Type": "application/json",
        }
        resp = self._transport("POST", self.api_url, headers, json.dumps(payload).encode("utf-8"), self.timeout_s)

        if not resp.ok:
            raise PublishHTTPError(resp.status, resp.text())

        try:
            data = json.loads(resp.text())
        except json.JSONDecodeError as e:
            raise PublishProtocolError("X API returned a non-JSON body") from e

        tweet_id = (data.get("data") or {}).get("id") if isinstance(data, dict) else None
        if not tweet_id:
            raise PublishProtocolError("X API did not return tweet ID")
        return str(tweet_id)

    def post_thread(self, parts: Sequence[str]) -> list[str]:
        """
        Post `parts` in order as a strict reply chain.

        A part that fails (after retries) aborts the rest; nothing is resumed.
        """
        tweet_ids: list[str] = []
        reply_to_id: str | None = None

        for i, part in enumerate(parts):
            tweet_id = with_retries(
                lambda: self.post_tweet(part, reply_to_id),
                max_retries=self.max_retries,
                base_delay_ms=self.base_delay_ms,
                sleep=self._sleep,
                cancel_event=self.cancel_event,
            )
            logger.info("posted part %d/%d as %s", i + 1, len(parts), tweet_id)
            tweet_ids.append(tweet_id)
            reply_to_id = tweet_id

        return tweet_ids
