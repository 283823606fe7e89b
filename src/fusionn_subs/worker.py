"""Queue consumer: dequeue, translate, notify."""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from fusionn_subs.http.callback import CallbackError, CallbackPayload
from fusionn_subs.jobs import JobPayloadError, JobRecord, JobValidationError
from fusionn_subs.queue import JobQueue, QueueError
from fusionn_subs.translator.base import TranslationError, TranslationProvider

logger = logging.getLogger(__name__)

DEFAULT_POLL_TIMEOUT_SECONDS = 5
DEFAULT_INITIAL_BACKOFF_SECONDS = 1.0
DEFAULT_MAX_BACKOFF_SECONDS = 30.0
_PAYLOAD_PREVIEW_CHARS = 200


class JobOutcome(str, Enum):
    """Result of one poll, used for summary counters."""

    IDLE = "idle"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    MALFORMED = "malformed"


class CompletionNotifier(Protocol):
    """Receiver of finished-translation notices."""

    def send(self, payload: CallbackPayload) -> None:
        """Deliver ``payload`` or raise :class:`CallbackError`."""


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    malformed: int = 0
    idle_polls: int = 0
    queue_errors: int = 0

    def record(self, outcome: JobOutcome) -> None:
        if outcome == JobOutcome.IDLE:
            self.idle_polls += 1
            return
        self.processed += 1
        if outcome == JobOutcome.SUCCEEDED:
            self.succeeded += 1
        elif outcome == JobOutcome.FAILED:
            self.failed += 1
        else:
            self.malformed += 1


class QueueWorker:
    """Consumes translation jobs until the stop event is set.

    Per-job failures drop the job and move on immediately. Only queue
    connectivity errors back off, doubling from ``initial_backoff_seconds``
    up to ``max_backoff_seconds``.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        queue: JobQueue,
        translator: TranslationProvider,
        callback: CompletionNotifier,
        poll_timeout_seconds: int = DEFAULT_POLL_TIMEOUT_SECONDS,
        initial_backoff_seconds: float = DEFAULT_INITIAL_BACKOFF_SECONDS,
        max_backoff_seconds: float = DEFAULT_MAX_BACKOFF_SECONDS,
    ) -> None:
        self.queue = queue
        self.translator = translator
        self.callback = callback
        self.poll_timeout_seconds = poll_timeout_seconds
        self.initial_backoff_seconds = initial_backoff_seconds
        self.max_backoff_seconds = max(max_backoff_seconds, initial_backoff_seconds)
        self.backoff_seconds = initial_backoff_seconds

    def run(self, stop_event: threading.Event) -> WorkerRunSummary:
        """Loop until ``stop_event`` is set and return the counters."""

        summary = WorkerRunSummary()
        logger.info("Worker started, waiting for jobs...")
        while not stop_event.is_set():
            try:
                outcome = self.process_next()
            except QueueError as error:
                summary.queue_errors += 1
                logger.error(
                    "Queue error: %s (retrying in %.0fs)",
                    error,
                    self.backoff_seconds,
                )
                if stop_event.wait(self.backoff_seconds):
                    break
                self.backoff_seconds = min(self.backoff_seconds * 2, self.max_backoff_seconds)
                continue

            summary.record(outcome)
            if outcome != JobOutcome.IDLE:
                self.backoff_seconds = self.initial_backoff_seconds

        logger.info(
            "Worker stopped: processed=%d succeeded=%d failed=%d malformed=%d queue_errors=%d",
            summary.processed,
            summary.succeeded,
            summary.failed,
            summary.malformed,
            summary.queue_errors,
        )
        return summary

    def process_next(self) -> JobOutcome:
        """Pop at most one job and handle it; queue errors propagate."""

        raw = self.queue.pop(self.poll_timeout_seconds)
        if raw is None:
            return JobOutcome.IDLE

        try:
            job = JobRecord.from_json(raw)
        except JobPayloadError as error:
            logger.error(
                "Dropping malformed job %r: %s",
                raw[:_PAYLOAD_PREVIEW_CHARS],
                error,
            )
            return JobOutcome.MALFORMED

        return self.process_job(job)

    def process_job(self, job: JobRecord) -> JobOutcome:
        logger.info("Processing job: %s", job.display_name)
        try:
            job.validate()
            output_path = self.translator.translate(job)
        except (JobValidationError, TranslationError) as error:
            logger.error("Translation failed for %s: %s", job.path or "<no path>", error)
            return JobOutcome.FAILED

        payload = CallbackPayload(
            chs_subtitle_path=output_path,
            eng_subtitle_path=job.path,
            video_path=job.video_path,
        )
        try:
            self.callback.send(payload)
        except CallbackError as error:
            logger.error("Callback failed for %s: %s", output_path, error)
            return JobOutcome.FAILED

        logger.info("Job completed: %s", output_path)
        return JobOutcome.SUCCEEDED


@contextmanager
def stop_on_signals(stop_event: threading.Event) -> Iterator[None]:
    """Set ``stop_event`` on SIGINT/SIGTERM while the block runs."""

    if not hasattr(signal, "SIGINT"):
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        logger.info("Received %s, shutting down after the current job...", name)
        stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
        installed = True
    except ValueError:
        # Signal handlers can only be installed in main thread.
        installed = False
    try:
        yield
    finally:
        if installed:
            signal.signal(signal.SIGINT, original_sigint)
            signal.signal(signal.SIGTERM, original_sigterm)
