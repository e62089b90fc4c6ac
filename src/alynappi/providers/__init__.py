"""Provider construction from :class:`~alynappi.config.Settings`."""
from __future__ import annotations

from alynappi.config import Settings
from alynappi.errors import ConfigurationError

from .base import ChatMessage, CompletionProvider, EmbeddingProvider, OcrProvider
from .local import HashEmbeddingProvider, PdfTextLayerProvider, SentenceTransformerEmbeddingProvider
from .mistral import (
    MistralClient,
    MistralCompletionProvider,
    MistralEmbeddingProvider,
    MistralOcrProvider,
)

__all__ = [
    "ChatMessage",
    "CompletionProvider",
    "EmbeddingProvider",
    "OcrProvider",
    "build_completion_provider",
    "build_embedding_provider",
    "build_ocr_provider",
]


def _mistral_client(settings: Settings) -> MistralClient:
    return MistralClient(
        settings.require_api_key(),
        base_url=settings.api_base_url,
        timeout=settings.http_timeout,
    )


def build_embedding_provider(settings: Settings) -> EmbeddingProvider:
    backend = settings.embedding_provider
    if backend == "mistral":
        return MistralEmbeddingProvider(_mistral_client(settings), settings.embedding_model)
    if backend == "local":
        return SentenceTransformerEmbeddingProvider(settings.local_embedding_model)
    if backend == "hash":
        return HashEmbeddingProvider()
    raise ConfigurationError(f"Unsupported EMBEDDING_PROVIDER: {backend!r}")


def build_ocr_provider(settings: Settings) -> OcrProvider:
    backend = settings.ocr_provider
    if backend == "mistral":
        return MistralOcrProvider(_mistral_client(settings), settings.ocr_model)
    if backend == "local":
        return PdfTextLayerProvider()
    raise ConfigurationError(f"Unsupported OCR_PROVIDER: {backend!r}")


def build_completion_provider(settings: Settings) -> CompletionProvider:
    return MistralCompletionProvider(
        _mistral_client(settings),
        settings.chat_model,
        max_tokens=settings.chat_max_tokens,
        temperature=settings.chat_temperature,
        top_p=settings.chat_top_p,
        frequency_penalty=settings.chat_frequency_penalty,
        presence_penalty=settings.chat_presence_penalty,
    )
