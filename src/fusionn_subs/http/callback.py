"""Downstream completion callback client."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import httpx

from fusionn_subs.http.retry import create_http_retry_policy

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_MAX_RETRIES = 3
_BODY_PREVIEW_CHARS = 200


class CallbackError(RuntimeError):
    """Callback that was not acknowledged by the downstream service."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class CallbackPayload:
    """Notification body for one finished translation."""

    chs_subtitle_path: str
    eng_subtitle_path: str
    video_path: str

    def to_json(self) -> dict[str, str]:
        return asdict(self)


class CallbackClient:
    """POST completion notices, retrying transport errors and 5xx responses."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_min_wait_seconds: float = 0.5,
        retry_max_wait_seconds: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"Content-Type": "application/json"},
        )
        self._retry_policy = create_http_retry_policy(
            max_retries=max_retries,
            min_wait_seconds=retry_min_wait_seconds,
            max_wait_seconds=retry_max_wait_seconds,
        )

    def send(self, payload: CallbackPayload) -> None:
        """Deliver ``payload``; raise :class:`CallbackError` on any failure."""

        try:
            response = self._retry_policy(self._client.post, self.url, json=payload.to_json())
        except httpx.HTTPError as error:
            raise CallbackError(f"send callback: {error}") from error

        if response.status_code >= 300:
            body = response.text
            if len(body) > _BODY_PREVIEW_CHARS:
                body = body[:_BODY_PREVIEW_CHARS] + "..."
            raise CallbackError(
                f"callback failed: status {response.status_code}, body: {body}",
                status_code=response.status_code,
            )

        logger.info("Callback delivered: %s", payload.chs_subtitle_path)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> CallbackClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
