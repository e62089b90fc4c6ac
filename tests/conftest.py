"""Shared fixtures: isolated configuration and in-memory test doubles."""
from __future__ import annotations

from typing import List, Sequence

import pytest

from alynappi.config import reset_settings_cache
from alynappi.providers.base import EmbeddingProvider
from alynappi.services.chat import reset_chat_service_cache
from alynappi.vectorstore import reset_section_store_cache

_CONFIG_ENV = (
    "MISTRAL_API_KEY",
    "MISTRAL_API_BASE",
    "EMBEDDING_PROVIDER",
    "EMBEDDING_BATCH_SIZE",
    "OCR_PROVIDER",
    "CHAT_MODEL",
    "MATCH_THRESHOLD",
    "MATCH_COUNT",
    "CHUNK_SIZE",
    "CHUNK_OVERLAP",
    "SOURCES_DIR",
    "FOLDER_CATEGORIES",
    "SITEMAPS",
    "WEB_ALLOWED_PATHS",
    "VECTOR_STORE",
    "CHROMA_PERSIST_DIR",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in _CONFIG_ENV:
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    reset_section_store_cache()
    reset_chat_service_cache()
    yield
    reset_settings_cache()
    reset_section_store_cache()
    reset_chat_service_cache()


class RecordingEmbeddingProvider(EmbeddingProvider):
    """Return one small vector per text and remember every call."""

    model_name = "recording"

    def __init__(self, dimension: int = 3) -> None:
        self.dimension = dimension
        self.calls: List[List[str]] = []

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [[float(len(text))] + [1.0] * (self.dimension - 1) for text in texts]


@pytest.fixture
def recording_embeddings() -> RecordingEmbeddingProvider:
    return RecordingEmbeddingProvider()
