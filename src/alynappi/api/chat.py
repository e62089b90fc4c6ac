"""API router exposing the streaming chat endpoint."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from alynappi.errors import ConfigurationError, InvalidRequestError, UpstreamAPIError
from alynappi.services.chat import ChatService, get_chat_service
from alynappi.vectorstore import VectorStoreUnavailableError

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


@router.post("/chat")
async def chat(
    request: Request,
    chat_service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """Stream an answer to the last message of the conversation as plain text."""

    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be JSON") from exc

    try:
        stream = await chat_service.open_stream(payload)
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except UpstreamAPIError as exc:
        LOGGER.error("Upstream failure while preparing chat answer: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except VectorStoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return StreamingResponse(stream, media_type="text/event-stream", headers=STREAM_HEADERS)
