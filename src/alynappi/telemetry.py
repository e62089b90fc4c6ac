"""Structured lifecycle events for ingestion, retrieval and streaming."""

from __future__ import annotations

import logging
import time
import traceback
from contextlib import contextmanager
from typing import Any, Iterator, Optional


LOGGER = logging.getLogger("alynappi.telemetry")


def _format_exception(error: BaseException) -> str:
    return "".join(traceback.format_exception(error.__class__, error, error.__traceback__))


def log_event(
    logger: Optional[logging.Logger],
    step: str,
    *,
    level: str = "info",
    req_id: str | None = None,
    duration_ms: float | None = None,
    exc: BaseException | str | None = None,
    details: dict[str, Any] | None = None,
    **payload: Any,
) -> None:
    """Emit a structured log event as a dict message."""

    logger = logger or LOGGER
    event: dict[str, Any] = {"step": step, "module": logger.name}
    if req_id:
        event["req_id"] = req_id
    if duration_ms is not None:
        event["duration_ms"] = round(duration_ms, 3)
    if details is not None:
        event["details"] = details
    event.update(payload)

    exc_info = None
    if exc is not None:
        if isinstance(exc, BaseException):
            event["exc"] = _format_exception(exc)
            exc_info = (exc.__class__, exc, exc.__traceback__)
        else:
            event["exc"] = str(exc)

    log_method = getattr(logger, level.lower(), logger.info)
    log_method(event, exc_info=exc_info)


def emit_embeddings_event(
    *, model: str, count: int, duration_ms: float, errors: list[str] | None = None
) -> None:
    details = {
        "model": model,
        "count": count,
        "errors": errors or [],
        "per_item_ms": round(duration_ms / count, 3) if count else None,
    }
    level = "error" if errors else "info"
    log_event(LOGGER, "embeddings.compute", level=level, duration_ms=duration_ms, details=details)


def emit_store_event(
    step: str,
    *,
    backend: str,
    count: int,
    error: BaseException | None = None,
) -> None:
    details = {"backend": backend, "count": count}
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, details=details, exc=error)


def emit_retriever_event(
    *,
    req_id: str,
    query: str,
    threshold: float,
    match_count: int,
    results: list[dict[str, Any]],
    duration_ms: float,
) -> None:
    details = {
        "query_preview": query[:120],
        "threshold": threshold,
        "match_count": match_count,
        "results": results,
    }
    log_event(LOGGER, "retriever.search", req_id=req_id, duration_ms=duration_ms, details=details)


def emit_ingest_event(
    step: str,
    *,
    title: str,
    category: str | None = None,
    duration_ms: float | None = None,
    pages: int | None = None,
    characters: int | None = None,
    chunks: int | None = None,
    reason: str | None = None,
) -> None:
    details = {
        "title": title,
        "category": category,
        "pages": pages,
        "characters": characters,
        "chunks": chunks,
    }
    if reason:
        details["reason"] = reason
    log_event(LOGGER, step, duration_ms=duration_ms, details=details)


def emit_relay_event(
    step: str,
    *,
    req_id: str | None,
    phase: str,
    fragments: int,
    characters: int,
    duration_ms: float | None = None,
    error: BaseException | None = None,
) -> None:
    details = {"phase": phase, "fragments": fragments, "characters": characters}
    level = "error" if error else "info"
    log_event(LOGGER, step, level=level, req_id=req_id, duration_ms=duration_ms, details=details, exc=error)


def emit_exception(
    *,
    module: str,
    error: BaseException,
    req_id: str | None = None,
    suggestion: str | None = None,
) -> None:
    details = {"module": module}
    if suggestion:
        details["suggestion"] = suggestion
    log_event(LOGGER, "exception", level="error", req_id=req_id, details=details, exc=error)


@contextmanager
def traced_duration(step: str, *, logger: Optional[logging.Logger] = None, **fields: Any) -> Iterator[None]:
    start = time.perf_counter()
    log_event(logger or LOGGER, f"{step}.start", details=fields)
    try:
        yield
    except Exception as error:
        log_event(logger or LOGGER, f"{step}.error", level="error", details=fields, exc=error)
        raise
    finally:
        end = time.perf_counter()
        log_event(
            logger or LOGGER,
            f"{step}.complete",
            duration_ms=(end - start) * 1000.0,
            details=fields,
        )


__all__ = [
    "emit_embeddings_event",
    "emit_store_event",
    "emit_retriever_event",
    "emit_ingest_event",
    "emit_relay_event",
    "emit_exception",
    "traced_duration",
    "log_event",
]
