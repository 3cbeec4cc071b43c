"""LLM provider for embeddings and chat with OpenAI integration.

Security: Reads API key from settings only, never hardcoded.
Provides a deterministic stub when no key is present for testing and
local development.
"""

import hashlib
import logging
import math
import re
from collections.abc import AsyncIterator
from typing import Protocol

from openai import AsyncOpenAI

from backend.app.config import Settings
from backend.app.errors import ConfigurationError
from backend.app.llm.prompts import NO_CONTEXT_ANSWER, PromptMessage

logger = logging.getLogger(__name__)


class LLMProvider(Protocol):
    """Protocol for embedding + chat providers."""

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts; one vector per text, same order."""
        ...

    async def embed_query(self, text: str) -> list[float]:
        """Embed a search query."""
        ...

    async def invoke(self, messages: list[PromptMessage]) -> str:
        """Complete a chat and return the full answer."""
        ...

    def stream(self, messages: list[PromptMessage]) -> AsyncIterator[str]:
        """Complete a chat, yielding text fragments as they arrive."""
        ...


_TOKEN_RE = re.compile(r"\w+")
_SOURCE_RE = re.compile(
    r"\[Source: [^\]]*, Page (\d+)\]\n(.*?)(?=\n\n\[Source: |\n\nQuestion: |\Z)", re.S
)


class DeterministicStubProvider:
    """Deterministic stub provider for testing (no API key required).

    Embeddings are hashed bag-of-words vectors, so texts sharing words score
    high on cosine similarity. Answers quote the first context block.
    """

    def __init__(self, dimensions: int = 768) -> None:
        self.dimensions = dimensions

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimensions
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.md5(token.encode()).digest()
            slot = int.from_bytes(digest[:4], "big") % self.dimensions
            vector[slot] += 1.0 if digest[4] % 2 == 0 else -1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    async def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    async def invoke(self, messages: list[PromptMessage]) -> str:
        user_content = messages[-1].content if messages else ""
        match = _SOURCE_RE.search(user_content)
        if match is None:
            return NO_CONTEXT_ANSWER
        page, text = match.group(1), " ".join(match.group(2).split())
        excerpt = text if len(text) <= 200 else text[:197] + "..."
        return f"According to page {page}, {excerpt}"

    async def stream(self, messages: list[PromptMessage]) -> AsyncIterator[str]:
        answer = await self.invoke(messages)
        for piece in re.findall(r"\S+\s*", answer):
            yield piece


class OpenAIProvider:
    """OpenAI-backed provider for embeddings and chat completions."""

    def __init__(
        self,
        api_key: str,
        chat_model: str = "gpt-4o-mini",
        embedding_model: str = "text-embedding-3-small",
        *,
        dimensions: int = 768,
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> None:
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            chat_model: Chat completion model
            embedding_model: Embedding model; must support the ``dimensions`` parameter
            dimensions: Requested embedding size
            temperature: Sampling temperature for answers
            max_tokens: Answer length cap
        """
        self.client = AsyncOpenAI(api_key=api_key)
        self.chat_model = chat_model
        self.embedding_model = embedding_model
        self.dimensions = dimensions
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        response = await self.client.embeddings.create(
            model=self.embedding_model,
            input=texts,
            dimensions=self.dimensions,
        )
        ordered = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in ordered]

    async def embed_query(self, text: str) -> list[float]:
        vectors = await self.embed_documents([text])
        return vectors[0]

    def _payload(self, messages: list[PromptMessage]) -> list[dict[str, str]]:
        return [{"role": m.role, "content": m.content} for m in messages]

    async def invoke(self, messages: list[PromptMessage]) -> str:
        response = await self.client.chat.completions.create(
            model=self.chat_model,
            messages=self._payload(messages),  # type: ignore[arg-type]
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        answer = response.choices[0].message.content or ""
        if not answer.strip():
            logger.warning("OpenAI returned empty response")
        return answer

    async def stream(self, messages: list[PromptMessage]) -> AsyncIterator[str]:
        response = await self.client.chat.completions.create(
            model=self.chat_model,
            messages=self._payload(messages),  # type: ignore[arg-type]
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            stream=True,
        )
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        finally:
            await response.close()


def create_provider(settings: Settings) -> LLMProvider:
    """Factory function to get the provider selected by config.

    Returns:
        OpenAIProvider if an API key is configured, DeterministicStubProvider otherwise

    Raises:
        ConfigurationError: Unknown provider, or openai selected without a key
    """
    api_key = settings.openai_api_key.get_secret_value() if settings.openai_api_key else ""
    provider = (settings.llm_provider or ("openai" if api_key else "stub")).lower()

    if provider == "openai":
        if not api_key:
            raise ConfigurationError("LLM provider 'openai' selected but OPENAI_API_KEY is not set")
        logger.info("Using OpenAI provider for embeddings and answers")
        return OpenAIProvider(
            api_key=api_key,
            chat_model=settings.openai_chat_model,
            embedding_model=settings.openai_embedding_model,
            dimensions=settings.embedding_dimensions,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_tokens,
        )

    if provider == "stub":
        logger.warning("No OpenAI API key configured, using deterministic stub provider")
        return DeterministicStubProvider(dimensions=settings.embedding_dimensions)

    raise ConfigurationError(f"Unsupported LLM provider: {provider}")
