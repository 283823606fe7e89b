from __future__ import annotations

import json
import signal
import threading
from collections.abc import Iterable
from pathlib import Path

import allure
import pytest

from fusionn_subs.http.callback import CallbackError, CallbackPayload
from fusionn_subs.jobs import JobRecord
from fusionn_subs.queue import QueueError
from fusionn_subs.translator import GeminiTranslator, ScriptOptions
from fusionn_subs.translator.base import TranslationError
from fusionn_subs.worker import JobOutcome, QueueWorker, stop_on_signals

pytestmark = [
    allure.epic("Queue"),
    allure.feature("Worker Loop"),
]


def _job_json(path: str = "/media/movie.eng.srt", **extra: str) -> str:
    return json.dumps({"path": path, "file_name": "movie.eng.srt", "video_path": "/m.mkv", **extra})


class ScriptedQueue:
    """Replays queued items: strings, ``None`` for a timeout, or exceptions.

    When the script runs out the stop event is set so ``run`` returns.
    """

    def __init__(self, items: Iterable[object], stop_event: threading.Event) -> None:
        self.items = list(items)
        self.stop_event = stop_event
        self.timeouts: list[int] = []

    def pop(self, timeout_seconds: int) -> str | None:
        self.timeouts.append(timeout_seconds)
        if not self.items:
            self.stop_event.set()
            return None
        item = self.items.pop(0)
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[return-value]


class FakeTranslator:
    name = "fake"

    def __init__(self, failures: Iterable[str] = ()) -> None:
        self.failures = set(failures)
        self.jobs: list[JobRecord] = []

    def translate(self, job: JobRecord) -> str:
        self.jobs.append(job)
        if job.path in self.failures:
            raise TranslationError("script failed: exit code 1")
        return job.output_path("chs")


class FakeCallback:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.payloads: list[CallbackPayload] = []

    def send(self, payload: CallbackPayload) -> None:
        self.payloads.append(payload)
        if self.fail:
            raise CallbackError("callback failed: status 500", status_code=500)


class RecordingEvent(threading.Event):
    """Event whose waits return immediately and are recorded."""

    def __init__(self) -> None:
        super().__init__()
        self.waits: list[float] = []

    def wait(self, timeout: float | None = None) -> bool:
        self.waits.append(timeout or 0.0)
        return self.is_set()


def _worker(queue, translator=None, callback=None, **kwargs) -> QueueWorker:
    return QueueWorker(
        queue=queue,
        translator=translator or FakeTranslator(),
        callback=callback or FakeCallback(),
        **kwargs,
    )


def test_successful_job_triggers_callback() -> None:
    stop = RecordingEvent()
    callback = FakeCallback()
    worker = _worker(ScriptedQueue([_job_json()], stop), callback=callback, poll_timeout_seconds=7)

    summary = worker.run(stop)

    assert summary.processed == 1
    assert summary.succeeded == 1
    assert callback.payloads == [
        CallbackPayload(
            chs_subtitle_path="/media/movie.chs.srt",
            eng_subtitle_path="/media/movie.eng.srt",
            video_path="/m.mkv",
        ),
    ]
    assert worker.queue.timeouts[0] == 7
    assert stop.waits == []


def test_timeout_is_a_silent_no_op() -> None:
    stop = RecordingEvent()
    translator = FakeTranslator()
    worker = _worker(ScriptedQueue([None, None], stop), translator=translator)

    summary = worker.run(stop)

    assert summary.idle_polls == 3
    assert summary.processed == 0
    assert translator.jobs == []
    assert stop.waits == []


def test_malformed_payload_is_dropped_and_loop_continues() -> None:
    stop = RecordingEvent()
    translator = FakeTranslator()
    worker = _worker(ScriptedQueue(["{not json", '{"path": 5}', _job_json()], stop), translator)

    summary = worker.run(stop)

    assert summary.malformed == 2
    assert summary.succeeded == 1
    assert len(translator.jobs) == 1


def test_job_without_path_is_dropped_before_translation() -> None:
    stop = RecordingEvent()
    translator = FakeTranslator()
    callback = FakeCallback()
    worker = _worker(ScriptedQueue([_job_json(path="")], stop), translator, callback)

    summary = worker.run(stop)

    assert summary.failed == 1
    assert translator.jobs == []
    assert callback.payloads == []


def test_translation_failure_drops_job_without_backoff() -> None:
    stop = RecordingEvent()
    callback = FakeCallback()
    worker = _worker(
        ScriptedQueue([_job_json(path="/bad.eng.srt"), _job_json()], stop),
        FakeTranslator(failures=["/bad.eng.srt"]),
        callback,
    )

    summary = worker.run(stop)

    assert summary.failed == 1
    assert summary.succeeded == 1
    assert [payload.eng_subtitle_path for payload in callback.payloads] == ["/media/movie.eng.srt"]
    assert stop.waits == []


def test_callback_failure_drops_job() -> None:
    stop = RecordingEvent()
    worker = _worker(ScriptedQueue([_job_json()], stop), callback=FakeCallback(fail=True))

    summary = worker.run(stop)

    assert summary.failed == 1
    assert summary.succeeded == 0
    assert stop.waits == []


def test_queue_errors_back_off_exponentially_with_cap() -> None:
    stop = RecordingEvent()
    errors = [QueueError("connection refused") for _ in range(7)]
    worker = _worker(
        ScriptedQueue(errors, stop),
        initial_backoff_seconds=1,
        max_backoff_seconds=30,
    )

    summary = worker.run(stop)

    assert summary.queue_errors == 7
    assert stop.waits == [1, 2, 4, 8, 16, 30, 30]


def test_idle_poll_keeps_backoff_and_handled_job_resets_it() -> None:
    stop = RecordingEvent()
    down = QueueError("down")
    items = [down, down, None, down, "{broken", down]
    worker = _worker(ScriptedQueue(items, stop), initial_backoff_seconds=1)

    worker.run(stop)

    assert stop.waits == [1, 2, 4, 1]


def test_stop_during_backoff_exits_loop() -> None:
    stop = threading.Event()

    class _FailingQueue:
        calls = 0

        def pop(self, timeout_seconds: int) -> str | None:
            _FailingQueue.calls += 1
            stop.set()
            raise QueueError("down")

    summary = _worker(_FailingQueue(), initial_backoff_seconds=60).run(stop)

    assert summary.queue_errors == 1
    assert _FailingQueue.calls == 1


def test_preset_stop_event_never_polls() -> None:
    stop = RecordingEvent()
    stop.set()
    queue = ScriptedQueue([_job_json()], stop)

    summary = _worker(queue).run(stop)

    assert summary.processed == 0
    assert queue.timeouts == []


def test_process_next_reports_outcome() -> None:
    stop = RecordingEvent()
    worker = _worker(ScriptedQueue([_job_json(), "[]"], stop))

    assert worker.process_next() == JobOutcome.SUCCEEDED
    assert worker.process_next() == JobOutcome.MALFORMED
    assert worker.process_next() == JobOutcome.IDLE


def test_stop_on_signals_sets_event_and_restores_handlers() -> None:
    stop = threading.Event()
    original = signal.getsignal(signal.SIGTERM)

    with stop_on_signals(stop):
        handler = signal.getsignal(signal.SIGTERM)
        assert callable(handler)
        handler(signal.SIGTERM, None)

    assert stop.is_set()
    assert signal.getsignal(signal.SIGTERM) == original


def test_stop_on_signals_outside_main_thread_is_a_no_op() -> None:
    stop = threading.Event()
    errors: list[BaseException] = []

    def _run() -> None:
        try:
            with stop_on_signals(stop):
                pass
        except BaseException as error:  # noqa: BLE001
            errors.append(error)

    thread = threading.Thread(target=_run)
    thread.start()
    thread.join()

    assert errors == []
    assert not stop.is_set()


@pytest.mark.parametrize("outcome", list(JobOutcome))
def test_outcome_values_are_strings(outcome: JobOutcome) -> None:
    assert isinstance(outcome.value, str)


def test_nul_character_job_is_dropped_and_next_job_runs(tmp_path: Path) -> None:
    stop = RecordingEvent()
    source = tmp_path / "movie.eng.srt"
    source.write_text("1\n", encoding="utf-8")
    (tmp_path / "movie.chs.srt").write_text("1\n", encoding="utf-8")
    translator = GeminiTranslator(
        ScriptOptions(
            script_path="/bin/true",
            working_dir=str(tmp_path),
            api_key="gemini-secret",
            target_language="Chinese",
            output_suffix="chs",
            timeout_seconds=30,
        ),
        line_sink=None,
    )
    callback = FakeCallback()
    items = [_job_json(path=str(source), overview="a\u0000b"), _job_json(path=str(source))]
    worker = _worker(ScriptedQueue(items, stop), translator, callback)

    summary = worker.run(stop)

    assert summary.failed == 1
    assert summary.succeeded == 1
    assert [payload.chs_subtitle_path for payload in callback.payloads] == [
        str(tmp_path / "movie.chs.srt"),
    ]


def test_deeply_nested_payload_counts_as_malformed() -> None:
    stop = RecordingEvent()
    worker = _worker(ScriptedQueue(["[" * 100_000, _job_json()], stop))

    summary = worker.run(stop)

    assert summary.malformed == 1
    assert summary.succeeded == 1
