"""Translation provider interface."""

from __future__ import annotations

from typing import Protocol

from fusionn_subs.jobs import JobRecord


class TranslationError(RuntimeError):
    """Translation attempt that produced no usable output."""

    def __init__(self, message: str, *, details: str | None = None) -> None:
        super().__init__(message)
        self.details = details


class TranslationProvider(Protocol):
    """Protocol implemented by translation providers."""

    name: str

    def translate(self, job: JobRecord) -> str:
        """Translate one job and return the path of the produced subtitle."""
