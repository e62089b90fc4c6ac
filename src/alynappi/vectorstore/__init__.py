"""Section store helpers backed by pluggable backends."""

from __future__ import annotations

from functools import lru_cache

from alynappi.config import get_settings

from .base import SectionStore
from .errors import VectorStoreUnavailableError
from .memory_store import InMemorySectionStore


@lru_cache()
def get_section_store() -> SectionStore:
    """Return a lazily initialised section store based on configuration."""

    settings = get_settings()
    backend = settings.vector_store

    if backend in {"mock", "memory"}:
        return InMemorySectionStore()

    if backend == "chroma":
        try:
            from .chroma_store import ChromaSectionStore
        except ImportError as exc:  # pragma: no cover - depends on optional dependency
            raise VectorStoreUnavailableError(
                "VECTOR_STORE=chroma requires the 'chromadb' package to be installed",
                cause=exc,
            ) from exc
        return ChromaSectionStore(settings.chroma_persist_dir)

    raise ValueError(f"Unsupported VECTOR_STORE backend: {backend!r}")


def reset_section_store_cache() -> None:
    """Clear the cached section store (primarily for testing)."""

    get_section_store.cache_clear()  # type: ignore[attr-defined]


__all__ = [
    "InMemorySectionStore",
    "SectionStore",
    "VectorStoreUnavailableError",
    "get_section_store",
    "reset_section_store_cache",
]
