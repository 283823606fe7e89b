"""Redis list used as the translation job queue."""

from __future__ import annotations

import logging
from typing import Protocol

import redis

logger = logging.getLogger(__name__)


class QueueError(RuntimeError):
    """Queue backend is unreachable or returned an error."""


class JobQueue(Protocol):
    """Blocking source of raw job payloads."""

    def pop(self, timeout_seconds: int) -> str | None:
        """Return the next payload, or ``None`` when the timeout elapses."""


class RedisJobQueue:
    """Consume payloads from the right end of a Redis list with ``BRPOP``."""

    def __init__(self, client: redis.Redis, name: str) -> None:
        self.client = client
        self.name = name

    def pop(self, timeout_seconds: int) -> str | None:
        try:
            item = self.client.brpop([self.name], timeout=timeout_seconds)
        except redis.exceptions.RedisError as error:
            raise QueueError(f"redis BRPOP {self.name}: {error}") from error
        if item is None:
            return None
        _, value = item
        if isinstance(value, bytes):
            return value.decode("utf-8", errors="replace")
        return value

    def ping(self) -> None:
        try:
            self.client.ping()
        except redis.exceptions.RedisError as error:
            raise QueueError(f"redis ping: {error}") from error

    def close(self) -> None:
        self.client.close()


def connect_queue(
    url: str,
    name: str,
    *,
    socket_timeout_seconds: float | None = None,
) -> RedisJobQueue:
    """Connect to Redis and verify it answers before the worker starts.

    ``socket_timeout_seconds`` must exceed the ``BRPOP`` timeout, otherwise
    every idle poll surfaces as a connection error.
    """

    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout_seconds,
        )
    except ValueError as error:
        raise QueueError(f"invalid redis url: {error}") from error

    queue = RedisJobQueue(client, name)
    try:
        queue.ping()
    except QueueError:
        queue.close()
        raise
    logger.info("Connected to Redis, queue: %s", name)
    return queue
