"""Embedding client over an OpenAI-compatible ``/embeddings`` endpoint."""

from __future__ import annotations

from openai import AsyncOpenAI

from mealprep_assistant.config import Settings


class OpenAIEmbeddingClient:
    """Async embeddings for queries and recipe documents.

    The vector dimension must match the one used when the recipe index
    was built; a mismatch makes the vector branch return nothing.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        dimensions: int | None = None,
    ) -> None:
        self.client = client
        self.model = model
        self.dimensions = dimensions

    @classmethod
    def from_settings(cls, settings: Settings) -> OpenAIEmbeddingClient:
        client = AsyncOpenAI(
            api_key=settings.resolved_embedding_api_key,
            base_url=settings.resolved_embedding_base_url,
            timeout=settings.ai_timeout_seconds,
        )
        return cls(client, settings.embedding_model, settings.embedding_dimensions)

    async def embed(self, text: str) -> list[float]:
        """Embed one string.

        Raises:
            ValueError: If *text* is blank.
            openai.OpenAIError: On provider or transport failure.
        """
        if not text.strip():
            raise ValueError("Cannot embed empty text")

        kwargs = {"dimensions": self.dimensions} if self.dimensions else {}
        response = await self.client.embeddings.create(input=text, model=self.model, **kwargs)
        return [float(x) for x in response.data[0].embedding]
