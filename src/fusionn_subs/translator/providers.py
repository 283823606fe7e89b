"""Script-backed translation providers for Gemini and OpenRouter."""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

from fusionn_subs.config import ConfigurationError, Settings
from fusionn_subs.jobs import JobRecord, JobValidationError
from fusionn_subs.masking import render_command_line
from fusionn_subs.translator.base import TranslationError, TranslationProvider
from fusionn_subs.translator.failure_classifier import classify_script_output
from fusionn_subs.translator.script_runner import (
    LineSink,
    ScriptRunError,
    ScriptRunResult,
    dimmed_stderr_sink,
    run_script,
)

logger = logging.getLogger(__name__)

_STDERR_TAIL_CHARS = 2_000


@dataclass(slots=True)
class ScriptOptions:
    """Invocation settings shared by every script-backed provider."""

    script_path: str
    working_dir: str
    api_key: str
    target_language: str
    output_suffix: str
    timeout_seconds: float
    instruction: str = ""
    rate_limit: int = 0
    max_batch_size: int = 0


class ScriptTranslator(ABC):
    """Base class that runs a subtitle translation script for one job."""

    name = "script"
    api_key_env: str = ""

    def __init__(
        self,
        options: ScriptOptions,
        *,
        line_sink: LineSink | None = dimmed_stderr_sink,
    ) -> None:
        self.options = options
        self.line_sink = line_sink

    def translate(self, job: JobRecord) -> str:
        try:
            job.validate()
        except JobValidationError as error:
            raise TranslationError(f"invalid message: {error}") from error

        output_path = job.output_path(self.options.output_suffix)
        model = self._current_model()
        argv = [self.options.script_path, *self.build_args(job, output_path, model)]

        env = os.environ.copy()
        env[self.api_key_env] = self.options.api_key

        logger.info("Starting translation (%s): %s -> %s", self.name, job.path, output_path)
        if model:
            logger.info("Model: %s", model)
        logger.debug(
            "Command: %s",
            render_command_line(argv, secrets=(self.options.api_key,)),
        )

        try:
            result = run_script(
                argv,
                env=env,
                cwd=self.options.working_dir,
                timeout_seconds=self.options.timeout_seconds,
                line_sink=self.line_sink,
            )
        except ScriptRunError as error:
            logger.error(
                "Script did not start (%s): %s",
                "transient" if error.transient else "permanent",
                error,
            )
            raise TranslationError(str(error)) from error

        self._check_result(result, output_path)
        logger.info(
            "Translation completed in %.1fs: %s",
            result.duration_seconds,
            output_path,
        )
        return output_path

    def build_args(self, job: JobRecord, output_path: str, model: str) -> list[str]:
        """Build script arguments; the API key travels only in the environment."""

        args = [job.path, "-o", output_path, "-l", self.options.target_language]
        args.extend(self.model_args(model))
        overview = job.overview.strip()
        if overview:
            args.extend(["-d", overview])
        if self.options.instruction:
            args.extend(["--instruction", self.options.instruction])
        if self.options.rate_limit > 0:
            args.extend(["--ratelimit", str(self.options.rate_limit)])
        if self.options.max_batch_size > 0:
            args.extend(["--maxbatchsize", str(self.options.max_batch_size)])
        return args

    @abstractmethod
    def model_args(self, model: str) -> list[str]:
        """Return the flags that select ``model`` for this script."""

    @abstractmethod
    def _current_model(self) -> str:
        """Return the model for the next job, or an empty string for the default."""

    def _check_result(self, result: ScriptRunResult, output_path: str) -> None:
        stderr_tail = result.stderr.strip()[-_STDERR_TAIL_CHARS:]
        if not result.succeeded:
            self._raise_for_exit(result, stderr_tail)
        if not Path(output_path).exists():
            logger.error("Output file not found after script completed: %s", output_path)
            raise TranslationError(f"output not found: {output_path}", details=stderr_tail or None)

        outcome = classify_script_output(result.stdout, result.stderr)
        if not outcome.ok:
            logger.error("Script failure detected: %s", outcome.matched_pattern)
            raise TranslationError(outcome.reason or "script reported failure")

    def _raise_for_exit(self, result: ScriptRunResult, stderr_tail: str) -> NoReturn:
        if result.timed_out:
            logger.error("Translation timed out after %.0fs", self.options.timeout_seconds)
            raise TranslationError(
                f"script timed out after {self.options.timeout_seconds:.0f}s",
                details=stderr_tail or None,
            )
        logger.error("Translation failed: exit code %s", result.exit_code)
        if stderr_tail:
            logger.error("Script stderr: %s", stderr_tail)
        raise TranslationError(
            f"script failed: exit code {result.exit_code}",
            details=stderr_tail or None,
        )


class GeminiTranslator(ScriptTranslator):
    """Fixed-model provider driving ``gemini-subtrans.sh``."""

    name = "gemini"
    api_key_env = "GEMINI_API_KEY"

    def __init__(
        self,
        options: ScriptOptions,
        *,
        model: str = "",
        line_sink: LineSink | None = dimmed_stderr_sink,
    ) -> None:
        super().__init__(options, line_sink=line_sink)
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    def model_args(self, model: str) -> list[str]:
        return ["-m", model] if model else []

    def _current_model(self) -> str:
        return self._model


class OpenRouterTranslator(ScriptTranslator):
    """Retargetable provider driving ``llm-subtrans.sh``.

    The active model can be swapped at runtime by the model selector while
    jobs are being translated; each job reads one snapshot of it.
    """

    name = "openrouter"
    api_key_env = "OPENROUTER_API_KEY"

    def __init__(
        self,
        options: ScriptOptions,
        *,
        model: str = "",
        line_sink: LineSink | None = dimmed_stderr_sink,
    ) -> None:
        super().__init__(options, line_sink=line_sink)
        self._model_lock = threading.Lock()
        self._model = model

    def update_model(self, new_model: str) -> None:
        with self._model_lock:
            old_model = self._model
            self._model = new_model
        if old_model != new_model:
            logger.info("Translator model updated: %s -> %s", old_model or "<unset>", new_model)

    def get_model(self) -> str:
        with self._model_lock:
            return self._model

    def model_args(self, model: str) -> list[str]:
        return ["--model", model]

    def _current_model(self) -> str:
        model = self.get_model()
        if not model:
            raise TranslationError("no OpenRouter model selected")
        return model


@dataclass(slots=True)
class TranslatorSelection:
    """Provider chosen at startup plus its retargetable handle, if any."""

    provider: TranslationProvider
    retargetable: OpenRouterTranslator | None = None


def build_translator(
    settings: Settings,
    *,
    line_sink: LineSink | None = dimmed_stderr_sink,
) -> TranslatorSelection:
    """Pick OpenRouter when its key is configured, else Gemini."""

    translator = settings.translator
    openrouter = settings.openrouter
    if openrouter.api_key:
        if settings.auto_selection_enabled:
            logger.info("Using OpenRouter translator (auto-selection enabled)")
        else:
            logger.info("Using OpenRouter translator (model: %s)", openrouter.model)
        provider = OpenRouterTranslator(
            ScriptOptions(
                script_path=openrouter.script_path,
                working_dir=openrouter.working_dir,
                api_key=openrouter.api_key,
                target_language=translator.target_language,
                output_suffix=translator.output_suffix,
                timeout_seconds=translator.script_timeout_seconds,
                instruction=openrouter.instruction,
                rate_limit=openrouter.effective_rate_limit,
                max_batch_size=openrouter.max_batch_size,
            ),
            model=openrouter.model,
            line_sink=line_sink,
        )
        return TranslatorSelection(provider=provider, retargetable=provider)

    gemini = settings.gemini
    if gemini.api_key:
        logger.info("Using Gemini translator (model: %s)", gemini.model)
        return TranslatorSelection(
            provider=GeminiTranslator(
                ScriptOptions(
                    script_path=gemini.script_path,
                    working_dir=gemini.working_dir,
                    api_key=gemini.api_key,
                    target_language=translator.target_language,
                    output_suffix=translator.output_suffix,
                    timeout_seconds=translator.script_timeout_seconds,
                    instruction=gemini.instruction,
                    rate_limit=gemini.rate_limit,
                    max_batch_size=gemini.max_batch_size,
                ),
                model=gemini.model,
                line_sink=line_sink,
            ),
        )

    raise ConfigurationError(
        "No translator configured: set OPENROUTER_API_KEY or GEMINI_API_KEY.",
    )
