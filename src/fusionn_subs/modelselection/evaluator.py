"""Generative-model evaluator that picks the best free translation model."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from fusionn_subs.http.retry import create_http_retry_policy
from fusionn_subs.modelselection.catalog import CandidateModel
from fusionn_subs.modelselection.prompts import (
    EVALUATION_SYSTEM_INSTRUCTION,
    build_evaluation_prompt,
)

logger = logging.getLogger(__name__)

DEFAULT_EVALUATOR_MODEL = "gemini-3-flash-preview"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_TIMEOUT_SECONDS = 180.0


class EvaluationError(RuntimeError):
    """Evaluator could not produce a candidate from the given list."""


class Evaluator(Protocol):
    """Protocol implemented by model evaluators."""

    def select_best_model(self, models: Sequence[CandidateModel]) -> str:
        """Return the id of one model from ``models``."""


def parse_model_response(raw: str) -> str:
    """Reduce a possibly verbose reply to its first token."""

    selected = raw.strip()
    selected = selected.split("\n", 1)[0]
    selected = selected.split(" ", 1)[0]
    return selected.strip()


def match_candidate(selected: str, models: Sequence[CandidateModel]) -> str:
    """Map an evaluator reply onto a candidate id.

    Exact match first, then the first candidate whose id contains the reply
    or is contained in it.
    """

    model_ids = [model.id for model in models]
    if selected in model_ids:
        return selected

    if selected:
        suggestions = [
            model_id for model_id in model_ids if selected in model_id or model_id in selected
        ]
        if suggestions:
            logger.warning(
                "Evaluator returned unknown model %r, possible matches: %s; using %s",
                selected,
                suggestions,
                suggestions[0],
            )
            return suggestions[0]

    logger.error("Available models: %s", model_ids)
    raise EvaluationError(
        f"selected model {selected!r} not found in available models: {', '.join(model_ids)}",
    )


class GeminiEvaluator:
    """Ask Gemini, through its REST API, to rank candidate models."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_EVALUATOR_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = 3,
        retry_min_wait_seconds: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model or DEFAULT_EVALUATOR_MODEL
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=10.0))
        self._retry_policy = create_http_retry_policy(
            max_retries=max_retries,
            min_wait_seconds=retry_min_wait_seconds,
        )

    def select_best_model(self, models: Sequence[CandidateModel]) -> str:
        if not models:
            raise EvaluationError("no models provided")

        prompt = build_evaluation_prompt(models)
        logger.info("Evaluating %d models with %s", len(models), self.model)
        logger.info("Models to evaluate: %s", [model.id for model in models])
        logger.debug("Evaluation prompt:\n%s", prompt)

        raw_response = self._generate(prompt)
        logger.info("Evaluator raw response: %r", raw_response)
        selected = parse_model_response(raw_response)
        if selected != raw_response:
            logger.info("Extracted model id %r from longer response", selected)

        chosen = match_candidate(selected, models)
        logger.info("Selected model: %s", chosen)
        return chosen

    def _generate(self, prompt: str) -> str:
        url = f"{self.base_url}/{self.model}:generateContent"
        body = {
            "system_instruction": {"parts": [{"text": EVALUATION_SYSTEM_INSTRUCTION}]},
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"temperature": 0.1},
            "tools": [{"googleSearch": {}}],
        }
        try:
            response = self._retry_policy(
                self._client.post,
                url,
                params={"key": self.api_key},
                json=body,
            )
        except httpx.HTTPError as error:
            raise EvaluationError(f"evaluator request failed: {error}") from error

        payload = _json_or_none(response)
        if not response.is_success:
            message = _error_message(payload)
            if message:
                raise EvaluationError(f"API error {response.status_code}: {message}")
            raise EvaluationError(f"API error {response.status_code}: {response.text[:200]}")

        text = _first_candidate_text(payload)
        if text is None:
            raise EvaluationError("no response from evaluator")
        return text

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> GeminiEvaluator:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return None


def _first_candidate_text(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    return text if isinstance(text, str) else None
