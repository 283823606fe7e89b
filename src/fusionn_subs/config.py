"""Runtime configuration for the translation worker."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from fusionn_subs.masking import mask_secret

DEFAULT_SCRIPT_DIR = "/opt/llm-subtrans"
DEFAULT_OPENROUTER_RATE_LIMIT = 10
DEFAULT_SCHEDULE_HOUR = 3


class ConfigurationError(ValueError):
    """Settings that cannot produce a working translator."""


@dataclass(slots=True)
class RedisSettings:
    """Queue connection settings."""

    url: str = "redis://localhost:6379/0"
    queue: str = "translate_queue"
    poll_timeout_seconds: int = 5


@dataclass(slots=True)
class CallbackSettings:
    """Downstream notification settings."""

    url: str = ""
    timeout_seconds: float = 15.0
    max_retries: int = 3


@dataclass(slots=True)
class TranslatorSettings:
    """Settings shared by every translation provider."""

    target_language: str = "Chinese"
    output_suffix: str = "chs"
    script_timeout_seconds: int = 900


@dataclass(slots=True)
class OpenRouterSettings:
    """OpenRouter provider and auto-selection settings."""

    api_key: str = ""
    model: str = ""
    instruction: str = ""
    rate_limit: int = 0
    max_batch_size: int = 0
    auto_select_model: bool = False
    fallback_model: str = ""
    script_path: str = f"{DEFAULT_SCRIPT_DIR}/llm-subtrans.sh"
    working_dir: str = DEFAULT_SCRIPT_DIR

    @property
    def effective_rate_limit(self) -> int:
        return self.rate_limit if self.rate_limit > 0 else DEFAULT_OPENROUTER_RATE_LIMIT


@dataclass(slots=True)
class GeminiSettings:
    """Gemini provider settings."""

    api_key: str = ""
    model: str = "gemini-2.5-flash-latest"
    instruction: str = ""
    rate_limit: int = 8
    max_batch_size: int = 20
    script_path: str = f"{DEFAULT_SCRIPT_DIR}/gemini-subtrans.sh"
    working_dir: str = DEFAULT_SCRIPT_DIR


@dataclass(slots=True)
class EvaluatorSettings:
    """Model evaluator settings used by automatic model selection."""

    api_key: str = ""
    model: str = "gemini-3-flash-preview"
    schedule_hour: int = DEFAULT_SCHEDULE_HOUR


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    redis: RedisSettings = field(default_factory=RedisSettings)
    callback: CallbackSettings = field(default_factory=CallbackSettings)
    translator: TranslatorSettings = field(default_factory=TranslatorSettings)
    openrouter: OpenRouterSettings = field(default_factory=OpenRouterSettings)
    gemini: GeminiSettings = field(default_factory=GeminiSettings)
    evaluator: EvaluatorSettings = field(default_factory=EvaluatorSettings)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from the process environment."""

        gemini_api_key = os.getenv("GEMINI_API_KEY", "").strip()
        openrouter_model = os.getenv("OPENROUTER_MODEL", "").strip()
        return cls(
            redis=RedisSettings(
                url=os.getenv("REDIS_URL", "redis://localhost:6379/0").strip(),
                queue=os.getenv("REDIS_QUEUE", "translate_queue").strip(),
                poll_timeout_seconds=_env_int("POLL_TIMEOUT_SECONDS", 5),
            ),
            callback=CallbackSettings(
                url=os.getenv("CALLBACK_URL", "").strip(),
                timeout_seconds=_env_float("CALLBACK_TIMEOUT_SECONDS", 15.0),
                max_retries=_env_int("CALLBACK_MAX_RETRIES", 3),
            ),
            translator=TranslatorSettings(
                target_language=os.getenv("TARGET_LANGUAGE", "Chinese").strip(),
                output_suffix=os.getenv("OUTPUT_SUFFIX", "chs").strip(),
                script_timeout_seconds=_env_int("SCRIPT_TIMEOUT_SECONDS", 900),
            ),
            openrouter=OpenRouterSettings(
                api_key=os.getenv("OPENROUTER_API_KEY", "").strip(),
                model=openrouter_model,
                instruction=os.getenv("OPENROUTER_INSTRUCTION", "").strip(),
                rate_limit=_env_int("OPENROUTER_RATE_LIMIT", 0),
                max_batch_size=_env_int("OPENROUTER_MAX_BATCH_SIZE", 0),
                auto_select_model=_env_bool("OPENROUTER_AUTO_SELECT_MODEL", default=False),
                fallback_model=os.getenv("OPENROUTER_FALLBACK_MODEL", openrouter_model).strip(),
                script_path=os.getenv(
                    "LLM_SUBTRANS_SCRIPT_PATH",
                    f"{DEFAULT_SCRIPT_DIR}/llm-subtrans.sh",
                ).strip(),
                working_dir=os.getenv("LLM_SUBTRANS_DIR", DEFAULT_SCRIPT_DIR).strip(),
            ),
            gemini=GeminiSettings(
                api_key=gemini_api_key,
                model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash-latest").strip(),
                instruction=os.getenv("GEMINI_INSTRUCTION", "").strip(),
                rate_limit=_env_int("GEMINI_RATE_LIMIT", 8),
                max_batch_size=_env_int("GEMINI_MAX_BATCH_SIZE", 20),
                script_path=os.getenv(
                    "GEMINI_SCRIPT_PATH",
                    f"{DEFAULT_SCRIPT_DIR}/gemini-subtrans.sh",
                ).strip(),
                working_dir=os.getenv("GEMINI_WORKDIR", DEFAULT_SCRIPT_DIR).strip(),
            ),
            evaluator=EvaluatorSettings(
                api_key=os.getenv("EVALUATOR_API_KEY", "").strip() or gemini_api_key,
                model=os.getenv("EVALUATOR_MODEL", "gemini-3-flash-preview").strip(),
                schedule_hour=_env_int("EVALUATOR_SCHEDULE_HOUR", DEFAULT_SCHEDULE_HOUR),
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        )

    @property
    def auto_selection_enabled(self) -> bool:
        return bool(self.openrouter.api_key) and self.openrouter.auto_select_model

    def validate_for_translation(self) -> None:
        """Raise configuration error unless a translator can be built."""

        if not self.openrouter.api_key and not self.gemini.api_key:
            raise ConfigurationError(
                "No translator configured: set OPENROUTER_API_KEY or GEMINI_API_KEY.",
            )
        if not self.translator.target_language:
            raise ConfigurationError("TARGET_LANGUAGE is required.")
        if self.translator.script_timeout_seconds <= 0:
            raise ConfigurationError("SCRIPT_TIMEOUT_SECONDS must be > 0.")
        if self.openrouter.api_key and not self.openrouter.auto_select_model:
            if not self.openrouter.model:
                raise ConfigurationError(
                    "OPENROUTER_MODEL is required unless OPENROUTER_AUTO_SELECT_MODEL is on.",
                )
        if self.auto_selection_enabled:
            self.validate_for_model_selection()

    def validate_for_model_selection(self) -> None:
        """Raise configuration error unless automatic model selection can run."""

        if not self.openrouter.api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is required for model selection.")
        if not self.evaluator.api_key:
            raise ConfigurationError(
                "EVALUATOR_API_KEY (or GEMINI_API_KEY) is required for model selection.",
            )
        if not self.openrouter.fallback_model:
            raise ConfigurationError(
                "OPENROUTER_FALLBACK_MODEL (or OPENROUTER_MODEL) is required for model selection.",
            )
        if not 0 <= self.evaluator.schedule_hour <= 23:
            raise ConfigurationError(
                "EVALUATOR_SCHEDULE_HOUR must be within 0..23, "
                f"got {self.evaluator.schedule_hour}.",
            )

    def validate_for_worker(self) -> None:
        """Raise configuration error if the queue worker cannot start."""

        if not self.redis.url:
            raise ConfigurationError("REDIS_URL is required.")
        _validate_url("REDIS_URL", self.redis.url, schemes={"redis", "rediss", "unix"})
        if not self.redis.queue:
            raise ConfigurationError("REDIS_QUEUE is required.")
        if self.redis.poll_timeout_seconds <= 0:
            raise ConfigurationError("POLL_TIMEOUT_SECONDS must be > 0.")
        if not self.callback.url:
            raise ConfigurationError("CALLBACK_URL is required.")
        _validate_url("CALLBACK_URL", self.callback.url, schemes={"http", "https"})
        if self.callback.timeout_seconds <= 0:
            raise ConfigurationError("CALLBACK_TIMEOUT_SECONDS must be > 0.")
        if self.callback.max_retries < 0:
            raise ConfigurationError("CALLBACK_MAX_RETRIES must be >= 0.")
        self.validate_for_translation()

    def safe_log_values(self) -> dict[str, object]:
        """Return a flat view of the settings with secrets masked."""

        return {
            "redis_url": self.redis.url,
            "redis_queue": self.redis.queue,
            "poll_timeout_seconds": self.redis.poll_timeout_seconds,
            "callback_url": self.callback.url,
            "callback_timeout_seconds": self.callback.timeout_seconds,
            "callback_max_retries": self.callback.max_retries,
            "target_language": self.translator.target_language,
            "output_suffix": self.translator.output_suffix,
            "script_timeout_seconds": self.translator.script_timeout_seconds,
            "openrouter_api_key": mask_secret(self.openrouter.api_key),
            "openrouter_model": self.openrouter.model,
            "openrouter_auto_select_model": self.openrouter.auto_select_model,
            "openrouter_fallback_model": self.openrouter.fallback_model,
            "openrouter_rate_limit": self.openrouter.effective_rate_limit,
            "openrouter_max_batch_size": self.openrouter.max_batch_size,
            "openrouter_script_path": self.openrouter.script_path,
            "gemini_api_key": mask_secret(self.gemini.api_key),
            "gemini_model": self.gemini.model,
            "gemini_rate_limit": self.gemini.rate_limit,
            "gemini_max_batch_size": self.gemini.max_batch_size,
            "gemini_script_path": self.gemini.script_path,
            "evaluator_api_key": mask_secret(self.evaluator.api_key),
            "evaluator_model": self.evaluator.model,
            "evaluator_schedule_hour": self.evaluator.schedule_hour,
            "log_level": self.log_level,
        }


def _validate_url(name: str, value: str, *, schemes: set[str]) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in schemes or (parsed.scheme != "unix" and not parsed.netloc):
        raise ConfigurationError(
            f"Invalid {name}: {value!r}. Expected scheme one of {sorted(schemes)}.",
        )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ConfigurationError(f"Invalid number value for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ConfigurationError(f"Invalid boolean value for {name}: {value!r}")
