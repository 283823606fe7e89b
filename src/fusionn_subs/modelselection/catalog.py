"""OpenRouter model catalog client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from fusionn_subs import __version__
from fusionn_subs.http.retry import create_http_retry_policy

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TIMEOUT_SECONDS = 60.0
FREE_MODEL_SUFFIX = ":free"
_FREE_PRICE = "0"


class CatalogError(RuntimeError):
    """Model catalog could not be fetched or decoded."""


@dataclass(frozen=True, slots=True)
class CandidateModel:
    """Metadata of one upstream translation model."""

    id: str
    name: str = ""
    context_length: int = 0
    description: str = ""
    pricing_prompt: str = ""
    pricing_completion: str = ""

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> CandidateModel:
        model_id = raw.get("id")
        if not isinstance(model_id, str) or not model_id.strip():
            raise ValueError("model entry has no id")
        pricing = raw.get("pricing") or {}
        if not isinstance(pricing, dict):
            pricing = {}
        context_length = raw.get("context_length") or 0
        return cls(
            id=model_id.strip(),
            name=str(raw.get("name") or ""),
            context_length=int(context_length) if isinstance(context_length, int | float) else 0,
            description=str(raw.get("description") or ""),
            pricing_prompt=_as_text(pricing.get("prompt")),
            pricing_completion=_as_text(pricing.get("completion")),
        )


def _as_text(value: object) -> str:
    return "" if value is None else str(value)


def is_free_model(model: CandidateModel) -> bool:
    """Free when the id carries the ``:free`` marker or both prices are ``"0"``."""

    if model.id.endswith(FREE_MODEL_SUFFIX):
        return True
    return model.pricing_prompt == _FREE_PRICE and model.pricing_completion == _FREE_PRICE


class OpenRouterCatalog:
    """Fetch the full model list; the endpoint has no server-side filtering."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = 3,
        retry_min_wait_seconds: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout_seconds, connect=10.0))
        self._headers = {
            "Authorization": f"Bearer {api_key}",
            "HTTP-Referer": "https://github.com/fusionn-subs",
            "X-Title": "fusionn-subs",
            "User-Agent": f"fusionn-subs/{__version__}",
        }
        self._retry_policy = create_http_retry_policy(
            max_retries=max_retries,
            min_wait_seconds=retry_min_wait_seconds,
        )

    def fetch_models(self) -> list[CandidateModel]:
        url = f"{self.base_url}/models"
        try:
            response = self._retry_policy(self._client.get, url, headers=self._headers)
        except httpx.HTTPError as error:
            raise CatalogError(f"fetch models: {error}") from error

        if not response.is_success:
            raise CatalogError(f"API error {response.status_code}: {response.text[:200]}")

        try:
            payload = response.json()
        except ValueError as error:
            raise CatalogError(f"invalid catalog JSON: {error}") from error
        entries = payload.get("data") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise CatalogError("catalog response has no 'data' array")

        models: list[CandidateModel] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                models.append(CandidateModel.from_api(entry))
            except (TypeError, ValueError) as error:
                logger.debug("Skipping catalog entry %r: %s", entry.get("id"), error)
        return models

    def fetch_free_models(self) -> list[CandidateModel]:
        """Return only free-tier models; suitability is left to the evaluator."""

        return [model for model in self.fetch_models() if is_free_model(model)]

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> OpenRouterCatalog:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
