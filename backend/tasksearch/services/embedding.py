"""Embedding service for turning search queries into vectors.

Supports OpenAI, Azure OpenAI and a local Ollama server. Task embeddings are
produced by the task service with the same model, so query vectors are
comparable with the stored ones.
"""

import httpx
import structlog
from openai import AsyncAzureOpenAI, AsyncOpenAI

from tasksearch.config import Settings, get_settings

logger = structlog.get_logger()

# Rough guard for the ~8K token input limit of embedding models
MAX_EMBEDDING_CHARS = 30000


class EmbeddingService:
    """Service for generating query embeddings.

    Provider selection:
    - ``embedding_provider="ollama"`` posts to ``{ollama_base_url}/api/embeddings``
    - otherwise, if AZURE_OPENAI_ENDPOINT is configured, uses Azure OpenAI
    - otherwise, uses OpenAI directly (requires OPENAI_API_KEY)
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self._client: AsyncOpenAI | AsyncAzureOpenAI | None = None

    @property
    def use_ollama(self) -> bool:
        return self.settings.embedding_provider == "ollama"

    @property
    def use_azure(self) -> bool:
        """Determine if Azure OpenAI should be used."""
        return not self.use_ollama and bool(self.settings.azure_openai_endpoint)

    @property
    def client(self) -> AsyncOpenAI | AsyncAzureOpenAI:
        """Lazy-initialize the OpenAI or Azure OpenAI client."""
        if self._client is None:
            if self.use_azure:
                azure_key = self.settings.azure_openai_api_key.get_secret_value()
                if not azure_key:
                    raise ValueError(
                        "Azure OpenAI not fully configured. "
                        "Set AZURE_OPENAI_ENDPOINT and AZURE_OPENAI_API_KEY."
                    )
                self._client = AsyncAzureOpenAI(
                    azure_endpoint=self.settings.azure_openai_endpoint,
                    api_key=azure_key,
                    api_version="2024-02-01",
                    timeout=self.settings.embedding_timeout_seconds,
                    max_retries=0,
                )
                logger.info("embedding_service_initialized", provider="azure_openai")
            else:
                api_key = self.settings.openai_api_key.get_secret_value()
                if not api_key:
                    raise ValueError(
                        "No embedding provider configured. "
                        "Set either AZURE_OPENAI_ENDPOINT or OPENAI_API_KEY."
                    )
                self._client = AsyncOpenAI(
                    api_key=api_key,
                    timeout=self.settings.embedding_timeout_seconds,
                    max_retries=0,
                )
                logger.info("embedding_service_initialized", provider="openai")
        return self._client

    @property
    def provider(self) -> str:
        if self.use_ollama:
            return "ollama"
        return "azure_openai" if self.use_azure else "openai"

    @property
    def model_name(self) -> str:
        """Get the model/deployment name for embedding generation."""
        if self.use_azure:
            return self.settings.azure_embedding_deployment
        return self.settings.embedding_model

    async def generate_embedding(self, text: str) -> list[float]:
        """Generate an embedding vector for the given text.

        Args:
            text: The text to embed. Will be truncated if too long.

        Returns:
            A list of floats representing the embedding vector.

        Raises:
            ValueError: If the provider is not configured or returned no vector.
            Exception: If embedding generation fails.
        """
        if len(text) > MAX_EMBEDDING_CHARS:
            logger.warning(
                "embedding_text_truncated",
                original_length=len(text),
                truncated_to=MAX_EMBEDDING_CHARS,
            )
            text = text[:MAX_EMBEDDING_CHARS]

        try:
            if self.use_ollama:
                embedding = await self._generate_ollama_embedding(text)
            elif self.use_azure:
                # Azure OpenAI doesn't support dimensions parameter for all models
                response = await self.client.embeddings.create(
                    model=self.model_name,
                    input=text,
                )
                embedding = response.data[0].embedding
            else:
                response = await self.client.embeddings.create(
                    model=self.model_name,
                    input=text,
                    dimensions=self.settings.embedding_dimensions,
                )
                embedding = response.data[0].embedding
        except Exception as e:
            logger.error(
                "embedding_generation_failed",
                error=str(e),
                text_length=len(text),
                provider=self.provider,
            )
            raise

        if not embedding:
            raise ValueError("Embedding response did not include a valid vector")
        return embedding

    async def _generate_ollama_embedding(self, text: str) -> list[float]:
        url = f"{self.settings.ollama_base_url.rstrip('/')}/api/embeddings"
        async with httpx.AsyncClient(timeout=self.settings.embedding_timeout_seconds) as client:
            response = await client.post(
                url,
                json={"model": self.settings.embedding_model, "prompt": text},
            )
            response.raise_for_status()
            data = response.json()

        embedding = data.get("embedding")
        if not isinstance(embedding, list):
            return []
        return embedding


def get_embedding_service(settings: Settings | None = None) -> EmbeddingService:
    """Factory function to get an EmbeddingService instance."""
    return EmbeddingService(settings)
