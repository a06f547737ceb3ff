"""Natural-language retrieval client (Gemini ``generateContent`` over REST).

Used for networks that publish no structured API: the model is asked to read
the operator's official site through search grounding and answer in JSON.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .config import Settings
from .errors import MalformedResponseError, UpstreamError
from .irail_client import USER_AGENT, raise_for_upstream_status
from .models import GroundingSource

logger = logging.getLogger(__name__)

BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-3-flash-preview"


@dataclass(frozen=True)
class RetrievalResponse:
    """Generated text plus the citations the answer was grounded on."""

    text: str
    sources: list[GroundingSource] = field(default_factory=list)


class RetrievalClient:
    """Client for the Gemini generateContent endpoint."""

    def __init__(
        self,
        api_key: str | None,
        model: str = DEFAULT_MODEL,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client: httpx.AsyncClient | None = http_client
        self._owns_client = http_client is None

    @classmethod
    def from_settings(cls, settings: Settings) -> RetrievalClient:
        return cls(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.http_timeout_seconds,
        )

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def generate(
        self,
        prompt: str,
        *,
        system_instruction: str | None = None,
        response_schema: dict[str, Any] | None = None,
        grounded: bool = False,
    ) -> RetrievalResponse:
        """Ask the model for a JSON answer.

        Args:
            prompt: User prompt.
            system_instruction: Optional system instruction.
            response_schema: JSON schema the output must follow.
            grounded: Enable the Google Search grounding tool.

        Returns:
            The generated text and any web citations.
        """
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")
        if not self.api_key:
            raise UpstreamError("No API key configured for the retrieval service (set GEMINI_API_KEY).")

        body: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if response_schema is not None:
            body["generationConfig"]["responseSchema"] = response_schema
        if grounded:
            body["tools"] = [{"google_search": {}}]

        url = f"{self.base_url}/models/{self.model}:generateContent"
        try:
            response = await self.client.post(
                url, json=body, headers={"x-goog-api-key": self.api_key}
            )
        except httpx.RequestError as e:
            raise UpstreamError(f"Could not reach the retrieval service: {e}") from e

        raise_for_upstream_status(response, "Retrieval service")

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedResponseError("Retrieval service returned invalid JSON") from e

        return parse_generate_response(payload)


def parse_generate_response(payload: Any) -> RetrievalResponse:
    """Extract text and grounding citations from a generateContent payload."""
    if not isinstance(payload, dict):
        raise MalformedResponseError("Retrieval service returned an unexpected payload")

    candidates = payload.get("candidates") or []
    if not candidates:
        return RetrievalResponse(text="")
    candidate = candidates[0]

    parts = (candidate.get("content") or {}).get("parts") or []
    text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    sources = []
    chunks = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []
    for chunk in chunks:
        web = chunk.get("web") if isinstance(chunk, dict) else None
        if not web or not web.get("uri"):
            continue
        sources.append(GroundingSource(title=web.get("title") or "Source", uri=web["uri"]))

    return RetrievalResponse(text=text, sources=sources)
