import logging
import os

import uvicorn
from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from alynappi.api.chat import router as chat_router
from alynappi.config import get_settings
from alynappi.logging_config import configure_logging

configure_logging(
    level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
    log_dir=os.getenv("LOG_DIR", "logs"),
)

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Äly-Nappi API")
app.include_router(chat_router)


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"


@app.get("/healthz/config")
def config_status() -> dict[str, object]:
    """Expose the selected backends without revealing credentials."""

    settings = get_settings()
    return {
        "embedding_provider": settings.embedding_provider,
        "embedding_model": settings.embedding_model,
        "chat_model": settings.chat_model,
        "vector_store": settings.vector_store,
        "match_threshold": settings.match_threshold,
        "match_count": settings.match_count,
        "api_key_configured": bool(settings.mistral_api_key),
    }


def run() -> None:
    """Serve the API with uvicorn using HOST and PORT from the environment."""

    uvicorn.run(
        "alynappi.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    run()
