from __future__ import annotations

import threading
import time
from collections.abc import Sequence
from datetime import datetime, timedelta

import allure
import pytest

from fusionn_subs.modelselection.catalog import CandidateModel
from fusionn_subs.modelselection.evaluator import EvaluationError
from fusionn_subs.modelselection.selector import ModelSelectionError, ModelSelector

pytestmark = [
    allure.epic("Model Selection"),
    allure.feature("Scheduled Selector"),
]

FALLBACK = "fallback/model:free"
MODELS = [CandidateModel(id="alpha/chat:free"), CandidateModel(id="beta/chat:free")]


class FakeCatalog:
    def __init__(self, models: Sequence[CandidateModel] = MODELS) -> None:
        self.models = list(models)
        self.calls = 0

    def fetch_free_models(self) -> list[CandidateModel]:
        self.calls += 1
        return list(self.models)


class FakeEvaluator:
    """Returns queued answers; an exception instance in the queue is raised."""

    def __init__(self, *answers: str | Exception) -> None:
        self.answers = list(answers)
        self.calls = 0
        self._lock = threading.Lock()

    def select_best_model(self, models: Sequence[CandidateModel]) -> str:
        with self._lock:
            self.calls += 1
            answer = self.answers.pop(0) if len(self.answers) > 1 else self.answers[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


class SteppingClock:
    """Starts at 03:00 and advances ``step`` on every read."""

    def __init__(self, step: timedelta = timedelta(0)) -> None:
        self.now = datetime(2026, 3, 1, 3, 0)
        self.step = step
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            current = self.now
            self.now += self.step
            return current


def _selector(evaluator: FakeEvaluator, **kwargs) -> ModelSelector:
    kwargs.setdefault("catalog", FakeCatalog())
    kwargs.setdefault("clock", SteppingClock())
    return ModelSelector(evaluator=evaluator, fallback_model=FALLBACK, **kwargs)


def test_initial_selection_wins_over_fallback() -> None:
    selector = _selector(FakeEvaluator("alpha/chat:free"))

    assert selector.get_current_model() == FALLBACK
    assert selector.evaluate() == "alpha/chat:free"
    assert selector.get_current_model() == "alpha/chat:free"


def test_initial_failure_serves_fallback() -> None:
    selector = _selector(FakeEvaluator(EvaluationError("evaluator down")))

    with pytest.raises(EvaluationError):
        selector.evaluate()

    assert selector.get_current_model() == FALLBACK
    assert selector.last_evaluation_time is not None


def test_failure_after_success_keeps_last_known_good() -> None:
    selector = _selector(FakeEvaluator("beta/chat:free", EvaluationError("quota")))
    selector.evaluate()

    with pytest.raises(EvaluationError):
        selector.evaluate()

    assert selector.get_current_model() == "beta/chat:free"


def test_empty_catalog_is_a_failed_cycle() -> None:
    evaluator = FakeEvaluator("alpha/chat:free")
    selector = _selector(evaluator, catalog=FakeCatalog(models=[]))

    with pytest.raises(ModelSelectionError, match="no free models"):
        selector.evaluate()

    assert evaluator.calls == 0
    assert selector.get_current_model() == FALLBACK


def test_callbacks_fire_only_on_change() -> None:
    selector = _selector(
        FakeEvaluator("alpha/chat:free", "alpha/chat:free", "beta/chat:free"),
    )
    updates: list[str] = []
    selector.on_model_update(updates.append)

    selector.evaluate()
    selector.evaluate()
    assert updates == []

    selector.evaluate()
    assert updates == ["beta/chat:free"]


def test_failing_callback_does_not_block_others() -> None:
    selector = _selector(FakeEvaluator("alpha/chat:free", "beta/chat:free"))
    updates: list[str] = []

    def _broken(_: str) -> None:
        raise RuntimeError("listener crashed")

    selector.on_model_update(_broken)
    selector.on_model_update(updates.append)
    selector.evaluate()
    selector.evaluate()

    assert updates == ["beta/chat:free"]
    assert selector.get_current_model() == "beta/chat:free"


def test_should_evaluate_requires_hour_and_gap() -> None:
    selector = _selector(FakeEvaluator("alpha/chat:free"), schedule_hour=3)
    at_three = datetime(2026, 3, 2, 3, 15)

    assert selector.should_evaluate(at_three)
    assert not selector.should_evaluate(at_three.replace(hour=4))

    selector.evaluate()
    evaluated_at = selector.last_evaluation_time
    assert evaluated_at is not None
    assert not selector.should_evaluate(evaluated_at + timedelta(minutes=30))
    assert not selector.should_evaluate(evaluated_at + timedelta(hours=22, minutes=59))
    assert selector.should_evaluate(evaluated_at + timedelta(days=1))


def test_invalid_schedule_hour_falls_back_to_default() -> None:
    selector = _selector(FakeEvaluator("alpha/chat:free"), schedule_hour=42)

    assert selector.schedule_hour == 3


def test_empty_fallback_is_rejected() -> None:
    with pytest.raises(ValueError, match="fallback"):
        ModelSelector(
            catalog=FakeCatalog(),
            evaluator=FakeEvaluator("alpha/chat:free"),
            fallback_model=" ",
        )


def test_start_survives_initial_failure_and_stop_joins() -> None:
    selector = _selector(
        FakeEvaluator(EvaluationError("evaluator down")),
        check_interval_seconds=60,
    )

    selector.start()
    try:
        assert selector.get_current_model() == FALLBACK
    finally:
        selector.stop(timeout=5)

    assert selector._scheduler_thread is None


def test_recovery_after_failed_start_notifies_listeners() -> None:
    selector = _selector(
        FakeEvaluator(EvaluationError("evaluator down"), "alpha/chat:free"),
        check_interval_seconds=60,
    )
    translator_models: list[str] = []

    selector.start()
    selector.stop(timeout=5)
    translator_models.append(selector.get_current_model())
    selector.on_model_update(translator_models.append)

    assert selector.evaluate() == "alpha/chat:free"
    assert translator_models == [FALLBACK, "alpha/chat:free"]
    assert selector.get_current_model() == "alpha/chat:free"


def test_scheduler_reevaluates_when_due() -> None:
    evaluator = FakeEvaluator("alpha/chat:free", "beta/chat:free")
    selector = _selector(
        evaluator,
        clock=SteppingClock(step=timedelta(days=1)),
        check_interval_seconds=0.01,
    )
    updates: list[str] = []
    selector.on_model_update(updates.append)

    selector.start()
    try:
        deadline = time.monotonic() + 5
        while evaluator.calls < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        selector.stop(timeout=5)

    assert evaluator.calls >= 3
    assert selector.get_current_model() == "beta/chat:free"
    assert updates == ["beta/chat:free"]
