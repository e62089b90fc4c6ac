"""Process-wide configuration resolved from environment variables."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Dict, Tuple

from dotenv import load_dotenv

from alynappi.errors import ConfigurationError
from alynappi.ingest.models import Category

LOGGER = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.mistral.ai/v1"
DEFAULT_READER_BASE = "https://r.jina.ai/"

DEFAULT_FOLDER_CATEGORIES: Dict[str, Category] = {
    "lehti-pdf": Category.MAGAZINE,
    "oppaat-pdf": Category.GUIDE,
    "tutkimukset-pdf": Category.RESEARCH,
}

DEFAULT_SITEMAPS: Tuple[str, ...] = (
    "https://klvl.fi/page-sitemap.xml",
    "https://kuuloavain.fi/page-sitemap.xml",
)

DEFAULT_ALLOWED_PATHS: Tuple[str, ...] = (
    "kuuloavain.fi/support",
    "kuuloavain.fi/info",
    "kuuloavain.fi/vertaistukea",
    "kuuloavain.fi/tietoa",
    "klvl.fi/uusille-perheille",
    "klvl.fi/vertaistoiminta",
    "klvl.fi/edunvalvonta",
    "klvl.fi/jasenille",
    "klvl.fi/vaikuta-kanssamme",
)


def _str_from_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _int_from_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        LOGGER.warning("Invalid integer for %s: %s; using default %s", name, value, default)
        return default


def _float_from_env(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        LOGGER.warning("Invalid float for %s: %s; using default %s", name, value, default)
        return default


def _list_from_env(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = os.getenv(name)
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def parse_folder_categories(raw: str) -> Dict[str, Category]:
    """Parse ``folder=Category`` pairs separated by commas.

    The table is data rather than code: adding a new source folder only needs
    a new pair here, e.g. ``lehti-pdf=Lehti,oppaat-pdf=Opas``.
    """

    table: Dict[str, Category] = {}
    for item in raw.split(","):
        if not item.strip():
            continue
        folder, separator, label = item.partition("=")
        if not separator or not folder.strip():
            raise ConfigurationError(f"Invalid folder mapping {item!r}; expected folder=Category")
        try:
            table[folder.strip()] = Category(label.strip())
        except ValueError as exc:
            raise ConfigurationError(f"Unknown category {label.strip()!r} for folder {folder.strip()!r}") from exc
    return table


@dataclass(frozen=True)
class Settings:
    mistral_api_key: str | None = None
    api_base_url: str = DEFAULT_API_BASE
    http_timeout: float = 120.0

    embedding_provider: str = "mistral"
    embedding_model: str = "mistral-embed"
    embedding_batch_size: int = 10
    local_embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"

    ocr_provider: str = "mistral"
    ocr_model: str = "mistral-ocr-latest"

    chat_model: str = "mistral-large-latest"
    chat_max_tokens: int = 2000
    chat_temperature: float = 0.7
    chat_top_p: float = 1.0
    chat_frequency_penalty: float = 0.2
    chat_presence_penalty: float = 0.1
    match_threshold: float = 0.15
    match_count: int = 8

    chunk_size: int = 1000
    chunk_overlap: int = 200

    sources_dir: Path = Path("tietolahteet")
    folder_categories: Dict[str, Category] = field(default_factory=lambda: dict(DEFAULT_FOLDER_CATEGORIES))

    reader_base_url: str = DEFAULT_READER_BASE
    sitemaps: Tuple[str, ...] = DEFAULT_SITEMAPS
    web_allowed_paths: Tuple[str, ...] = DEFAULT_ALLOWED_PATHS
    web_min_content_chars: int = 300
    web_min_chunk_chars: int = 150

    vector_store: str = "mock"
    chroma_persist_dir: Path = Path("chroma_db")

    def require_api_key(self) -> str:
        """Return the Mistral API key or fail when it is not configured."""

        if not self.mistral_api_key:
            raise ConfigurationError("MISTRAL_API_KEY environment variable is required")
        return self.mistral_api_key


def _load_dotenv() -> None:
    for candidate in (Path(".env.local"), Path(".env")):
        if candidate.exists():
            load_dotenv(dotenv_path=candidate, override=False)


def load_settings() -> Settings:
    """Build :class:`Settings` from the current environment."""

    _load_dotenv()
    raw_folders = os.getenv("FOLDER_CATEGORIES")
    folder_categories = (
        parse_folder_categories(raw_folders) if raw_folders else dict(DEFAULT_FOLDER_CATEGORIES)
    )
    return Settings(
        mistral_api_key=os.getenv("MISTRAL_API_KEY") or None,
        api_base_url=_str_from_env("MISTRAL_API_BASE", DEFAULT_API_BASE).rstrip("/"),
        http_timeout=_float_from_env("HTTP_TIMEOUT", 120.0),
        embedding_provider=_str_from_env("EMBEDDING_PROVIDER", "mistral").lower(),
        embedding_model=_str_from_env("EMBEDDING_MODEL", "mistral-embed"),
        embedding_batch_size=_int_from_env("EMBEDDING_BATCH_SIZE", 10),
        local_embedding_model=_str_from_env(
            "LOCAL_EMBEDDING_MODEL", "sentence-transformers/all-MiniLM-L6-v2"
        ),
        ocr_provider=_str_from_env("OCR_PROVIDER", "mistral").lower(),
        ocr_model=_str_from_env("OCR_MODEL", "mistral-ocr-latest"),
        chat_model=_str_from_env("CHAT_MODEL", "mistral-large-latest"),
        chat_max_tokens=_int_from_env("CHAT_MAX_TOKENS", 2000),
        chat_temperature=_float_from_env("CHAT_TEMPERATURE", 0.7),
        chat_top_p=_float_from_env("CHAT_TOP_P", 1.0),
        chat_frequency_penalty=_float_from_env("CHAT_FREQUENCY_PENALTY", 0.2),
        chat_presence_penalty=_float_from_env("CHAT_PRESENCE_PENALTY", 0.1),
        match_threshold=_float_from_env("MATCH_THRESHOLD", 0.15),
        match_count=_int_from_env("MATCH_COUNT", 8),
        chunk_size=_int_from_env("CHUNK_SIZE", 1000),
        chunk_overlap=_int_from_env("CHUNK_OVERLAP", 200),
        sources_dir=Path(_str_from_env("SOURCES_DIR", "tietolahteet")),
        folder_categories=folder_categories,
        reader_base_url=_str_from_env("READER_BASE_URL", DEFAULT_READER_BASE),
        sitemaps=_list_from_env("SITEMAPS", DEFAULT_SITEMAPS),
        web_allowed_paths=_list_from_env("WEB_ALLOWED_PATHS", DEFAULT_ALLOWED_PATHS),
        web_min_content_chars=_int_from_env("WEB_MIN_CONTENT_CHARS", 300),
        web_min_chunk_chars=_int_from_env("WEB_MIN_CHUNK_CHARS", 150),
        vector_store=_str_from_env("VECTOR_STORE", "mock").lower(),
        chroma_persist_dir=Path(_str_from_env("CHROMA_PERSIST_DIR", "chroma_db")),
    )


@lru_cache()
def get_settings() -> Settings:
    """Return the cached process-wide settings."""

    return load_settings()


def reset_settings_cache() -> None:
    """Clear the cached settings (primarily for testing)."""

    get_settings.cache_clear()  # type: ignore[attr-defined]
