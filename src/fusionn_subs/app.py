"""Composition root wiring settings, queue, translator, selector and callback."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager

from fusionn_subs import __version__
from fusionn_subs.config import Settings
from fusionn_subs.http.callback import CallbackClient
from fusionn_subs.modelselection.catalog import OpenRouterCatalog
from fusionn_subs.modelselection.evaluator import GeminiEvaluator
from fusionn_subs.modelselection.selector import ModelSelector
from fusionn_subs.queue import connect_queue
from fusionn_subs.translator import OpenRouterTranslator, build_translator
from fusionn_subs.worker import QueueWorker, WorkerRunSummary, stop_on_signals

logger = logging.getLogger(__name__)

_SOCKET_TIMEOUT_MARGIN_SECONDS = 5.0


@contextmanager
def model_selector(settings: Settings) -> Iterator[ModelSelector]:
    """Yield a selector backed by the OpenRouter catalog and Gemini evaluator.

    The selector is not started; the caller decides whether to run a single
    evaluation or the daily schedule.
    """

    with (
        OpenRouterCatalog(settings.openrouter.api_key) as catalog,
        GeminiEvaluator(settings.evaluator.api_key, model=settings.evaluator.model) as evaluator,
    ):
        yield ModelSelector(
            catalog=catalog,
            evaluator=evaluator,
            fallback_model=settings.openrouter.fallback_model,
            schedule_hour=settings.evaluator.schedule_hour,
        )


def attach_model_selection(
    stack: ExitStack,
    settings: Settings,
    translator: OpenRouterTranslator,
) -> ModelSelector:
    """Start automatic selection and keep ``translator`` pointed at its choice."""

    selector = stack.enter_context(model_selector(settings))
    selector.start()
    stack.callback(selector.stop)
    translator.update_model(selector.get_current_model())
    selector.on_model_update(translator.update_model)
    return selector


def run_worker(
    settings: Settings,
    *,
    stop_event: threading.Event | None = None,
) -> WorkerRunSummary:
    """Run the queue worker until SIGINT/SIGTERM or ``stop_event`` is set."""

    settings.validate_for_worker()
    logger.info("fusionn-subs %s starting", __version__)
    for key, value in sorted(settings.safe_log_values().items()):
        logger.info("  %s: %s", key, value)

    stop_event = stop_event or threading.Event()
    with ExitStack() as stack:
        queue = connect_queue(
            settings.redis.url,
            settings.redis.queue,
            socket_timeout_seconds=(
                settings.redis.poll_timeout_seconds + _SOCKET_TIMEOUT_MARGIN_SECONDS
            ),
        )
        stack.callback(queue.close)

        selection = build_translator(settings)
        if settings.auto_selection_enabled and selection.retargetable is not None:
            attach_model_selection(stack, settings, selection.retargetable)

        callback = stack.enter_context(
            CallbackClient(
                settings.callback.url,
                timeout_seconds=settings.callback.timeout_seconds,
                max_retries=settings.callback.max_retries,
            ),
        )
        worker = QueueWorker(
            queue=queue,
            translator=selection.provider,
            callback=callback,
            poll_timeout_seconds=settings.redis.poll_timeout_seconds,
        )
        with stop_on_signals(stop_event):
            summary = worker.run(stop_event)

    logger.info("Shutdown complete")
    return summary
