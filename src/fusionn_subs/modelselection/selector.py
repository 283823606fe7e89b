"""Scheduled selection of the active OpenRouter translation model."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta
from typing import Protocol

from fusionn_subs.modelselection.catalog import CandidateModel
from fusionn_subs.modelselection.evaluator import Evaluator

logger = logging.getLogger(__name__)

ModelUpdateCallback = Callable[[str], None]

DEFAULT_SCHEDULE_HOUR = 3
DEFAULT_CHECK_INTERVAL_SECONDS = 3600.0
MIN_EVALUATION_GAP = timedelta(hours=23)


class ModelSelectionError(RuntimeError):
    """Evaluation cycle that did not produce a model."""


class ModelCatalog(Protocol):
    """Source of candidate models."""

    def fetch_free_models(self) -> Sequence[CandidateModel]:
        """Return the current free-tier candidates."""


class ModelSelector:
    """Keeps the best free model selected, re-evaluating once a day.

    ``get_current_model`` resolves through ``selected``, then the last known
    good selection, then the configured fallback model, so callers always get
    a usable id even if no evaluation ever succeeded. State lives only in
    memory; a restart triggers a fresh evaluation.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        catalog: ModelCatalog,
        evaluator: Evaluator,
        fallback_model: str,
        schedule_hour: int = DEFAULT_SCHEDULE_HOUR,
        check_interval_seconds: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        min_evaluation_gap: timedelta = MIN_EVALUATION_GAP,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not fallback_model.strip():
            raise ValueError("fallback model required")
        if not 0 <= schedule_hour <= 23:
            logger.warning(
                "Invalid schedule hour %s, using %02d:00",
                schedule_hour,
                DEFAULT_SCHEDULE_HOUR,
            )
            schedule_hour = DEFAULT_SCHEDULE_HOUR

        self.catalog = catalog
        self.evaluator = evaluator
        self.fallback_model = fallback_model.strip()
        self.schedule_hour = schedule_hour
        self.check_interval_seconds = check_interval_seconds
        self.min_evaluation_gap = min_evaluation_gap
        self._clock = clock or datetime.now

        self._lock = threading.Lock()
        self._selected = ""
        self._last_known_good = ""
        self._last_evaluation_time: datetime | None = None
        self._callbacks: list[ModelUpdateCallback] = []

        self._stop_event = threading.Event()
        self._scheduler_thread: threading.Thread | None = None

    def start(self) -> None:
        """Run the initial evaluation (blocking), then start the daily scheduler."""

        local_now = datetime.now().astimezone()
        zone = local_now.tzname() or "local"
        logger.info("Using timezone: %s (UTC%s)", zone, local_now.strftime("%z"))
        logger.info(
            "Starting model selector (daily evaluation at %02d:00 %s)",
            self.schedule_hour,
            zone,
        )

        try:
            self.evaluate()
        except Exception as error:  # noqa: BLE001
            logger.error("Initial model evaluation failed: %s", error)
            with self._lock:
                if not self._selected:
                    self._selected = self.fallback_model
                    self._last_known_good = self.fallback_model
            logger.warning("Using fallback model: %s", self.get_current_model())

        self._stop_event.clear()
        self._scheduler_thread = threading.Thread(
            target=self._run_scheduler,
            daemon=True,
            name="model-selector",
        )
        self._scheduler_thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop_event.set()
        if self._scheduler_thread is None:
            return
        self._scheduler_thread.join(timeout=timeout)
        self._scheduler_thread = None
        logger.info("Model selector stopped")

    def get_current_model(self) -> str:
        with self._lock:
            if self._selected:
                return self._selected
            if self._last_known_good:
                return self._last_known_good
            return self.fallback_model

    @property
    def last_evaluation_time(self) -> datetime | None:
        with self._lock:
            return self._last_evaluation_time

    def on_model_update(self, callback: ModelUpdateCallback) -> None:
        with self._lock:
            self._callbacks.append(callback)

    def evaluate(self) -> str:
        """Run one evaluation cycle and return the selected model id.

        Network calls happen outside the lock; only the state swap holds it.
        """

        attempted_at = self._clock()
        logger.info("Fetching free models from catalog...")
        try:
            models = list(self.catalog.fetch_free_models())
            if not models:
                raise ModelSelectionError("no free models available")
            logger.info("Found %d free models (evaluator will select best)", len(models))
            selected = self.evaluator.select_best_model(models)
        except Exception:
            with self._lock:
                self._last_evaluation_time = attempted_at
            raise

        with self._lock:
            previous = self._selected
            self._selected = selected
            self._last_known_good = selected
            self._last_evaluation_time = attempted_at
            callbacks = list(self._callbacks)

        if not previous:
            logger.info("Initial model selected: %s", selected)
        elif previous != selected:
            logger.info("Model changed: %s -> %s", previous, selected)
            for callback in callbacks:
                try:
                    callback(selected)
                except Exception:
                    logger.exception("Model update callback failed")
        return selected

    def should_evaluate(self, now: datetime) -> bool:
        """True inside the scheduled hour once the minimum gap has passed."""

        if now.hour != self.schedule_hour:
            return False
        last = self.last_evaluation_time
        return last is None or now - last >= self.min_evaluation_gap

    def _run_scheduler(self) -> None:
        while not self._stop_event.wait(timeout=self.check_interval_seconds):
            if not self.should_evaluate(self._clock()):
                continue
            logger.info("Daily evaluation triggered")
            try:
                self.evaluate()
            except Exception as error:  # noqa: BLE001
                logger.error("Scheduled evaluation failed: %s", error)
                logger.warning("Continuing with model: %s", self.get_current_model())
