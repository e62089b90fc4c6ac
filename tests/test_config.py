from pathlib import Path

import pytest

from alynappi.config import (
    DEFAULT_FOLDER_CATEGORIES,
    Settings,
    get_settings,
    load_settings,
    parse_folder_categories,
    reset_settings_cache,
)
from alynappi.errors import ConfigurationError
from alynappi.ingest.models import Category
from alynappi.providers import build_completion_provider, build_embedding_provider, build_ocr_provider
from alynappi.providers.local import HashEmbeddingProvider, PdfTextLayerProvider
from alynappi.providers.mistral import MistralEmbeddingProvider


def test_defaults_match_the_hosted_setup():
    settings = load_settings()

    assert settings.mistral_api_key is None
    assert settings.embedding_model == "mistral-embed"
    assert settings.embedding_batch_size == 10
    assert settings.chat_model == "mistral-large-latest"
    assert (settings.match_threshold, settings.match_count) == (0.15, 8)
    assert (settings.chunk_size, settings.chunk_overlap) == (1000, 200)
    assert settings.sources_dir == Path("tietolahteet")
    assert settings.folder_categories == DEFAULT_FOLDER_CATEGORIES
    assert settings.vector_store == "mock"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("MISTRAL_API_KEY", "secret")
    monkeypatch.setenv("MATCH_THRESHOLD", "0.3")
    monkeypatch.setenv("MATCH_COUNT", "4")
    monkeypatch.setenv("VECTOR_STORE", "Chroma")
    monkeypatch.setenv("SITEMAPS", "https://a.example/sitemap.xml, https://b.example/sitemap.xml")
    monkeypatch.setenv("FOLDER_CATEGORIES", "lehdet=Lehti,raportit=Tutkimus")

    settings = load_settings()

    assert settings.mistral_api_key == "secret"
    assert settings.match_threshold == 0.3
    assert settings.match_count == 4
    assert settings.vector_store == "chroma"
    assert settings.sitemaps == ("https://a.example/sitemap.xml", "https://b.example/sitemap.xml")
    assert settings.folder_categories == {"lehdet": Category.MAGAZINE, "raportit": Category.RESEARCH}


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("MATCH_COUNT", "many")
    monkeypatch.setenv("MATCH_THRESHOLD", "low")

    settings = load_settings()

    assert settings.match_count == 8
    assert settings.match_threshold == 0.15


def test_dotenv_file_is_loaded_without_overriding_environment(monkeypatch, tmp_path):
    # dotenv writes straight to os.environ; register the key so teardown removes it.
    monkeypatch.setenv("MATCH_COUNT", "0")
    monkeypatch.delenv("MATCH_COUNT")
    (tmp_path / ".env").write_text("MATCH_COUNT=3\nCHAT_MODEL=mistral-small-latest\n", encoding="utf-8")
    monkeypatch.setenv("CHAT_MODEL", "from-environment")

    settings = load_settings()

    assert settings.match_count == 3
    assert settings.chat_model == "from-environment"


def test_get_settings_is_cached_until_reset(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("MATCH_COUNT", "2")

    assert get_settings() is first
    reset_settings_cache()
    assert get_settings().match_count == 2


@pytest.mark.parametrize("raw", ["lehti-pdf", "=Lehti", "lehti-pdf=Sarjakuva"])
def test_parse_folder_categories_rejects_bad_entries(raw):
    with pytest.raises(ConfigurationError):
        parse_folder_categories(raw)


def test_parse_folder_categories_ignores_blank_items():
    assert parse_folder_categories(" oppaat = Opas ,, ") == {"oppaat": Category.GUIDE}


def test_mistral_backends_require_api_key():
    settings = Settings()

    with pytest.raises(ConfigurationError, match="MISTRAL_API_KEY"):
        build_embedding_provider(settings)
    with pytest.raises(ConfigurationError):
        build_ocr_provider(settings)
    with pytest.raises(ConfigurationError):
        build_completion_provider(settings)


def test_provider_selection():
    assert isinstance(build_embedding_provider(Settings(embedding_provider="hash")), HashEmbeddingProvider)
    assert isinstance(build_ocr_provider(Settings(ocr_provider="local")), PdfTextLayerProvider)
    assert isinstance(
        build_embedding_provider(Settings(mistral_api_key="k", embedding_model="mistral-embed")),
        MistralEmbeddingProvider,
    )
    with pytest.raises(ConfigurationError):
        build_embedding_provider(Settings(embedding_provider="word2vec"))
    with pytest.raises(ConfigurationError):
        build_ocr_provider(Settings(ocr_provider="tesseract"))
