"""Job records decoded from the translation queue."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass
from typing import Any

_JOB_FIELDS: tuple[str, ...] = ("file_name", "path", "video_path", "overview", "provider")
_LANGUAGE_MARKER = re.compile(r"\.eng(\.[^./\\]*)?$", re.IGNORECASE)


class JobPayloadError(ValueError):
    """Queue entry that can never be decoded into a job record."""


class JobValidationError(ValueError):
    """Decoded job record that fails validation."""


@dataclass(frozen=True, slots=True)
class JobRecord:
    """One unit of translation work dequeued from the queue."""

    path: str
    file_name: str = ""
    video_path: str = ""
    overview: str = ""
    provider: str = ""

    @classmethod
    def from_json(cls, raw: str | bytes) -> JobRecord:
        """Decode one queue entry.

        Missing keys and ``null`` values become empty strings. Anything that is
        not a JSON object of string fields raises :class:`JobPayloadError`.
        """

        try:
            payload = json.loads(raw)
        except (TypeError, ValueError, RecursionError) as error:
            raise JobPayloadError(f"Invalid job JSON: {error}") from error
        if not isinstance(payload, dict):
            raise JobPayloadError(
                f"Job payload must be a JSON object, got {type(payload).__name__}.",
            )
        return cls.from_mapping(payload)

    @classmethod
    def from_mapping(cls, payload: dict[str, Any]) -> JobRecord:
        values: dict[str, str] = {}
        for name in _JOB_FIELDS:
            value = payload.get(name)
            if value is None:
                values[name] = ""
                continue
            if not isinstance(value, str):
                raise JobPayloadError(
                    f"Job field {name!r} must be a string, got {type(value).__name__}.",
                )
            values[name] = value
        return cls(**values)

    def validate(self) -> None:
        """Raise :class:`JobValidationError` unless the job can be handed to a script."""

        if not self.path.strip():
            raise JobValidationError("message.path is required")
        for name in _JOB_FIELDS:
            if "\0" in getattr(self, name):
                raise JobValidationError(f"message.{name} contains a NUL character")

    def output_path(self, suffix: str) -> str:
        """Derive the translated artifact path for ``suffix``."""

        return derive_output_path(self.path, suffix)

    @property
    def display_name(self) -> str:
        return self.file_name or os.path.basename(self.path) or "<unnamed>"


def derive_output_path(path: str, suffix: str) -> str:
    """Compute the output path from an input path and a language suffix.

    ``movie.eng.srt`` + ``chs`` -> ``movie.chs.srt``; ``movie.srt`` + ``.chs``
    -> ``movie.chs.srt``; ``movie`` + ``chs`` -> ``movie.chs``.
    """

    clean_suffix = suffix.lstrip(".")
    if not clean_suffix:
        return path

    marker = _LANGUAGE_MARKER.search(path)
    if marker is not None:
        replacement = clean_suffix.split(".", 1)[0]
        return f"{path[: marker.start()]}.{replacement}{marker.group(1) or ''}"

    base, extension = os.path.splitext(path)
    if extension:
        return f"{base}.{clean_suffix}{extension}"
    return f"{path}.{clean_suffix}"
