"""Deterministic failure detection for translation script output.

The external subtitle tool exits 0 for some failure classes and only reports
them as text, so a clean exit still has to be checked against this list.
"""

from __future__ import annotations

from dataclasses import dataclass

SCRIPT_FAILURE_PATTERNS: tuple[str, ...] = (
    "translationimpossibleerror",
    "failed to translate",
    "failed to communicate with provider",
    "saving partial results",
    "traceback (most recent call last)",
)


@dataclass(frozen=True, slots=True)
class ScriptOutcome:
    """Classification of captured script output."""

    ok: bool
    reason: str | None = None
    matched_pattern: str | None = None


def classify_script_output(stdout: str, stderr: str) -> ScriptOutcome:
    """Return a failure outcome if either stream carries a known failure phrase."""

    pattern = _first_match(_normalize_text(stdout=stdout, stderr=stderr), SCRIPT_FAILURE_PATTERNS)
    if pattern is None:
        return ScriptOutcome(ok=True)
    return ScriptOutcome(
        ok=False,
        reason=f"script reported failure: {pattern}",
        matched_pattern=pattern,
    )


def _normalize_text(*, stdout: str, stderr: str) -> str:
    return f"{stdout}\n{stderr}".lower()


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
