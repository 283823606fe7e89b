"""CLI entrypoint for fusionn-subs."""

import logging
import os
from pathlib import Path

import rich_click as click

from fusionn_subs import __version__
from fusionn_subs.config import ConfigurationError
from fusionn_subs.controllers import ModelsCommand, SubsCliController, TranslateCommand
from fusionn_subs.modelselection.catalog import CatalogError
from fusionn_subs.modelselection.evaluator import EvaluationError
from fusionn_subs.modelselection.selector import ModelSelectionError
from fusionn_subs.queue import QueueError
from fusionn_subs.translator import TranslationError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = SubsCliController()
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="fusionn-subs")
def fusionn_subs() -> None:
    """Subtitle translation worker.

    Configuration is read from environment variables.
    """

    _configure_logging(os.getenv("LOG_LEVEL", "INFO"))


@fusionn_subs.command("worker")
def worker() -> None:
    """Consume translation jobs from Redis until SIGINT/SIGTERM."""

    try:
        lines = CONTROLLER.run_worker()
    except (ConfigurationError, QueueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@fusionn_subs.command("models")
@click.option(
    "--all/--free",
    "show_all",
    default=False,
    show_default=True,
    help="List every catalog model instead of only free ones.",
)
def models(show_all: bool) -> None:
    """List OpenRouter models available for translation."""

    try:
        lines = CONTROLLER.list_models(ModelsCommand(show_all=show_all))
    except (ConfigurationError, CatalogError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@fusionn_subs.command("select-model")
def select_model() -> None:
    """Run one model evaluation and print the chosen model id."""

    try:
        lines = CONTROLLER.select_model()
    except (
        ConfigurationError,
        CatalogError,
        EvaluationError,
        ModelSelectionError,
    ) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@fusionn_subs.command("translate")
@click.argument("path", type=click.Path(path_type=Path, dir_okay=False))
@click.option("--overview", default="", help="Plot summary passed to the translator as context.")
def translate(path: Path, overview: str) -> None:
    """Translate one subtitle file without going through the queue."""

    try:
        lines = CONTROLLER.translate(TranslateCommand(path=path, overview=overview))
    except (ConfigurationError, TranslationError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.strip().upper() or "INFO")
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    fusionn_subs()
