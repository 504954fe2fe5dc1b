"""Embedding service for converting query text into vector embeddings.

Uses the OpenAI embeddings API (text-embedding-3-small by default) or the
Gemini embedding API to produce vectors matching the dimension of the
``document_embeddings.embedding`` pgvector column.
"""

import asyncio
import logging
import os

import httpx
from google import genai
from google.genai import types
from openai import APIError, AsyncOpenAI, RateLimitError

from searchfusion.search.errors import LanguageServiceError

logger = logging.getLogger(__name__)

_OPENAI_DEFAULT_MODEL = "text-embedding-3-small"
_GOOGLE_DEFAULT_MODEL = "gemini-embedding-001"


class EmbeddingError(LanguageServiceError):
    """Raised when an embedding API call fails."""

    def __init__(self, message: str, quota_exceeded: bool = False) -> None:
        self.quota_exceeded = quota_exceeded
        super().__init__(message)


class EmbeddingService:
    """Generate vector embeddings for text.

    Supports three modes:

    * **OpenAI API mode** (default) -- uses the OpenAI embeddings endpoint.
    * **Gemini API mode** -- ``provider="google"``, uses ``google-genai``.
    * **Local HTTP mode** -- when ``local_url`` (or the
      ``EMBEDDING_SERVICE_URL`` environment variable) is set, all requests
      are forwarded to a local embedding service instead.

    Parameters
    ----------
    api_key : str
        Provider API key.  Ignored when running in local mode.
    model : str
        Embedding model name.  Ignored in local mode.
    dimensions : int
        Output vector dimensions (default: 1536).
    provider : str
        ``"openai"`` or ``"google"``.
    local_url : str | None
        Base URL of a local embedding server.
    """

    def __init__(
        self,
        api_key: str = "",
        model: str = _OPENAI_DEFAULT_MODEL,
        dimensions: int = 1536,
        provider: str = "openai",
        local_url: str | None = None,
    ) -> None:
        self._dimensions = dimensions
        self._provider = provider
        self._local_url: str | None = local_url or os.environ.get("EMBEDDING_SERVICE_URL") or None
        self._api_key = api_key
        self._openai_client: AsyncOpenAI | None = None
        self._genai_client: genai.Client | None = None

        if self._local_url:
            logger.info("EmbeddingService: local mode enabled (%s)", self._local_url)
            self._model = model
        elif provider == "google":
            # The OpenAI default name means "not configured" for Gemini
            self._model = _GOOGLE_DEFAULT_MODEL if model == _OPENAI_DEFAULT_MODEL else model
        elif provider == "openai":
            self._model = model
        else:
            raise ValueError(f"Unknown embedding provider: {provider!r}")

    @property
    def dimensions(self) -> int:
        return self._dimensions

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_text(self, text: str) -> list[float]:
        """Embed a single text string.

        Returns an empty list when *text* is empty or whitespace-only.

        Raises
        ------
        EmbeddingError
            If the provider call fails.
        """
        if not text or not text.strip():
            return []

        result = await self._call_api([text])
        if not result:
            raise EmbeddingError("Embedding service returned no vectors")
        return result[0]

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts in a single API call (batch).

        Returns an empty list when *texts* is empty.
        """
        if not texts:
            return []

        return await self._call_api(texts)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call_api(self, texts: list[str]) -> list[list[float]]:
        if self._local_url:
            return await self._call_local_api(texts)
        if self._provider == "google":
            return await self._call_google_api(texts)
        return await self._call_openai_api(texts)

    def _get_openai_client(self) -> AsyncOpenAI:
        # Created on first use so a missing key only fails the vector path
        if self._openai_client is None:
            api_key = self._api_key or os.environ.get("OPENAI_API_KEY", "")
            if not api_key:
                raise EmbeddingError("OPENAI_API_KEY is not configured")
            self._openai_client = AsyncOpenAI(api_key=api_key)
        return self._openai_client

    def _get_genai_client(self) -> genai.Client:
        if self._genai_client is None:
            api_key = self._api_key or os.environ.get("GOOGLE_API_KEY", "")
            if not api_key:
                raise EmbeddingError("GOOGLE_API_KEY is not configured")
            self._genai_client = genai.Client(api_key=api_key)
        return self._genai_client

    async def _call_openai_api(self, texts: list[str]) -> list[list[float]]:
        """Call the OpenAI embeddings API.

        Raises
        ------
        EmbeddingError
            Wraps any ``openai.APIError``; rate limiting is flagged as
            quota exhaustion.
        """
        try:
            response = await self._get_openai_client().embeddings.create(
                input=texts,
                model=self._model,
                dimensions=self._dimensions,
            )
        except RateLimitError as exc:
            logger.warning("Embedding quota exceeded: %s", exc)
            raise EmbeddingError(str(exc), quota_exceeded=True) from exc
        except APIError as exc:
            logger.error("Embedding API error: %s", exc)
            raise EmbeddingError(str(exc)) from exc

        # The response data is ordered by index; sort to be safe.
        sorted_data = sorted(response.data, key=lambda d: d.index)
        return [item.embedding for item in sorted_data]

    async def _call_google_api(self, texts: list[str]) -> list[list[float]]:
        """Call the Gemini embedding API in a worker thread."""
        try:
            response = await asyncio.to_thread(
                self._get_genai_client().models.embed_content,
                model=self._model,
                contents=texts,
                config=types.EmbedContentConfig(output_dimensionality=self._dimensions),
            )
        except Exception as exc:
            logger.error("Gemini embedding error: %s", exc)
            raise EmbeddingError(str(exc), quota_exceeded=getattr(exc, "code", None) == 429) from exc

        return [list(item.values or []) for item in response.embeddings or []]

    async def _call_local_api(self, texts: list[str]) -> list[list[float]]:
        """Call a local HTTP embedding service.

        Expects the service to expose a ``POST /embed`` endpoint that
        accepts ``{"input": [...], "dimensions": N}`` and returns
        ``{"embeddings": [[...], ...]}``.

        Raises
        ------
        EmbeddingError
            If the HTTP request fails or returns an unexpected response.
        """
        url = f"{self._local_url.rstrip('/')}/embed"
        payload = {"input": texts, "dimensions": self._dimensions}

        try:
            async with httpx.AsyncClient(timeout=60.0) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                data = response.json()
                return data["embeddings"]
        except httpx.HTTPStatusError as exc:
            logger.error("Local embedding HTTP error: %s", exc)
            raise EmbeddingError(str(exc), quota_exceeded=exc.response.status_code == 429) from exc
        except httpx.RequestError as exc:
            logger.error("Local embedding request error: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        except (KeyError, ValueError) as exc:
            logger.error("Local embedding response parse error: %s", exc)
            raise EmbeddingError(f"Unexpected response from local embedding service: {exc}") from exc
