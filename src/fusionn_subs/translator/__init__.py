"""Translation providers backed by external subtitle scripts."""

from fusionn_subs.translator.base import TranslationError, TranslationProvider
from fusionn_subs.translator.providers import (
    GeminiTranslator,
    OpenRouterTranslator,
    ScriptOptions,
    TranslatorSelection,
    build_translator,
)

__all__ = [
    "GeminiTranslator",
    "OpenRouterTranslator",
    "ScriptOptions",
    "TranslationError",
    "TranslationProvider",
    "TranslatorSelection",
    "build_translator",
]
