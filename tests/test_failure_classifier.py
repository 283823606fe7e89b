from __future__ import annotations

import allure
import pytest

from fusionn_subs.translator.failure_classifier import (
    SCRIPT_FAILURE_PATTERNS,
    classify_script_output,
)

pytestmark = [
    allure.epic("Translation"),
    allure.feature("Script Failure Detection"),
]


def test_clean_output_is_ok() -> None:
    outcome = classify_script_output("Translated 120 lines\nDone", "progress 100%")

    assert outcome.ok
    assert outcome.reason is None
    assert outcome.matched_pattern is None


@pytest.mark.parametrize(
    ("stdout", "stderr", "expected"),
    [
        ("", "TranslationImpossibleError: nothing to do", "translationimpossibleerror"),
        ("Failed to translate batch 3", "", "failed to translate"),
        ("", "FAILED TO COMMUNICATE WITH PROVIDER", "failed to communicate with provider"),
        ("Saving partial results to out.srt", "", "saving partial results"),
        ("", "Traceback (most recent call last):\n  File x", "traceback (most recent call last)"),
    ],
)
def test_failure_phrases_are_detected_case_insensitively(
    stdout: str,
    stderr: str,
    expected: str,
) -> None:
    outcome = classify_script_output(stdout, stderr)

    assert not outcome.ok
    assert outcome.matched_pattern == expected
    assert expected in (outcome.reason or "")


def test_pattern_split_across_streams_is_not_matched() -> None:
    outcome = classify_script_output("Failed to", "translate")

    assert outcome.ok


def test_pattern_list_is_lowercase() -> None:
    assert all(pattern == pattern.lower() for pattern in SCRIPT_FAILURE_PATTERNS)
