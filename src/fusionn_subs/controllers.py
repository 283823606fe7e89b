"""Controllers for fusionn-subs CLI commands."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from fusionn_subs.app import model_selector, run_worker
from fusionn_subs.config import ConfigurationError, Settings
from fusionn_subs.jobs import JobRecord
from fusionn_subs.modelselection.catalog import CatalogError, OpenRouterCatalog, is_free_model
from fusionn_subs.modelselection.evaluator import EvaluationError
from fusionn_subs.modelselection.selector import ModelSelectionError
from fusionn_subs.translator import build_translator

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ModelsCommand:
    """CLI input for catalog listing."""

    show_all: bool = False


@dataclass(slots=True)
class TranslateCommand:
    """CLI input for a one-off translation outside the queue."""

    path: Path
    overview: str = ""


class SubsCliController:
    """Runs CLI commands and returns printable lines."""

    def run_worker(self) -> list[str]:
        summary = run_worker(Settings.from_env())
        return [
            "Worker summary: "
            f"processed={summary.processed} succeeded={summary.succeeded} "
            f"failed={summary.failed} malformed={summary.malformed} "
            f"idle_polls={summary.idle_polls} queue_errors={summary.queue_errors}",
        ]

    def list_models(self, command: ModelsCommand) -> list[str]:
        settings = Settings.from_env()
        if not settings.openrouter.api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is required to list models.")

        with OpenRouterCatalog(settings.openrouter.api_key) as catalog:
            models = catalog.fetch_models()
        if not command.show_all:
            models = [model for model in models if is_free_model(model)]

        label = "models" if command.show_all else "free models"
        lines = [f"{len(models)} {label}:"]
        for model in sorted(models, key=lambda item: item.id):
            context = f"{model.context_length} ctx" if model.context_length else "? ctx"
            lines.append(f"- {model.id} ({context})")
        return lines

    def select_model(self) -> list[str]:
        """Run one evaluation cycle and report the chosen model."""

        settings = Settings.from_env()
        settings.validate_for_model_selection()
        with model_selector(settings) as selector:
            selected = selector.evaluate()
        return [f"Selected model: {selected}"]

    def translate(self, command: TranslateCommand) -> list[str]:
        settings = Settings.from_env()
        settings.validate_for_translation()

        selection = build_translator(settings)
        if settings.auto_selection_enabled and selection.retargetable is not None:
            with model_selector(settings) as selector:
                try:
                    selector.evaluate()
                except (CatalogError, EvaluationError, ModelSelectionError) as error:
                    logger.warning("Model evaluation failed, using fallback: %s", error)
                selection.retargetable.update_model(selector.get_current_model())

        job = JobRecord(
            path=str(command.path),
            file_name=command.path.name,
            overview=command.overview,
        )
        output_path = selection.provider.translate(job)
        return [f"Translated: {command.path} -> {output_path}"]
