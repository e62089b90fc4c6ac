"""Mistral HTTP API client: file upload, OCR, embeddings and streamed chat."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx
from pydantic import BaseModel, ValidationError

from alynappi.errors import UpstreamAPIError
from alynappi.ingest.models import OcrPage, OcrResult

from .base import ChatMessage, CompletionProvider, EmbeddingProvider, OcrProvider

LOGGER = logging.getLogger(__name__)


class FileUploadResponse(BaseModel):
    id: str


class OcrPagePayload(BaseModel):
    page_number: Optional[int] = None
    number: Optional[int] = None
    markdown: Optional[str] = None
    text: Optional[str] = None


class OcrResponse(BaseModel):
    pages: Optional[List[OcrPagePayload]] = None
    markdown: Optional[str] = None
    text: Optional[str] = None
    content: Optional[str] = None

    def to_result(self) -> OcrResult:
        if self.pages:
            return OcrResult(
                pages=[
                    OcrPage(
                        page_number=page.page_number or page.number or position,
                        text=page.markdown or page.text or "",
                    )
                    for position, page in enumerate(self.pages, start=1)
                ]
            )
        return OcrResult(text=self.markdown or self.text or self.content or "")


class EmbeddingItem(BaseModel):
    embedding: List[float]
    index: Optional[int] = None


class EmbeddingResponse(BaseModel):
    data: List[EmbeddingItem]

    def vectors(self) -> List[List[float]]:
        items = list(self.data)
        if items and all(item.index is not None for item in items):
            items.sort(key=lambda item: item.index)  # type: ignore[arg-type,return-value]
        return [item.embedding for item in items]


def _raise_for_status(response: httpx.Response, operation: str) -> None:
    if response.is_success:
        return
    raise UpstreamAPIError(
        f"{operation} failed ({response.status_code}): {response.text}",
        status_code=response.status_code,
        body=response.text,
    )


class MistralClient:
    """Thin asynchronous wrapper around the Mistral REST endpoints."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.mistral.ai/v1",
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _post(self, operation: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._client() as client:
                response = await client.post(path, **kwargs)
        except httpx.HTTPError as exc:
            raise UpstreamAPIError(f"{operation} request failed: {exc}") from exc
        _raise_for_status(response, operation)
        return response

    async def upload_file(self, path: Path, *, purpose: str = "ocr") -> str:
        """Upload a PDF and return the file identifier used by OCR."""

        data = path.read_bytes()
        LOGGER.info("Uploading %s (%.2f MB)", path.name, len(data) / (1024 * 1024))
        response = await self._post(
            "Upload",
            "/files",
            files={"file": (path.name, data, "application/pdf")},
            data={"purpose": purpose},
        )
        try:
            return FileUploadResponse.model_validate(response.json()).id
        except (ValidationError, ValueError) as exc:
            raise UpstreamAPIError("Upload succeeded but no file ID returned") from exc

    async def ocr(self, file_id: str, *, model: str) -> OcrResult:
        response = await self._post(
            "OCR",
            "/ocr",
            json={"model": model, "document": {"type": "file", "file_id": file_id}},
        )
        try:
            return OcrResponse.model_validate(response.json()).to_result()
        except (ValidationError, ValueError) as exc:
            raise UpstreamAPIError("Invalid OCR response format") from exc

    async def embeddings(self, texts: Sequence[str], *, model: str) -> List[List[float]]:
        response = await self._post("Embeddings", "/embeddings", json={"model": model, "input": list(texts)})
        try:
            return EmbeddingResponse.model_validate(response.json()).vectors()
        except (ValidationError, ValueError) as exc:
            raise UpstreamAPIError("Invalid embeddings response format") from exc

    @asynccontextmanager
    async def stream_chat_completion(self, payload: Dict[str, Any]) -> AsyncIterator[AsyncIterator[bytes]]:
        """Start a streamed chat completion; the response is closed on exit."""

        async with self._client() as client:
            request = client.build_request("POST", "/chat/completions", json={**payload, "stream": True})
            try:
                response = await client.send(request, stream=True)
            except httpx.HTTPError as exc:
                raise UpstreamAPIError(f"Chat completion request failed: {exc}") from exc
            try:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise UpstreamAPIError(
                        f"Mistral API error: {response.status_code} - {body}",
                        status_code=response.status_code,
                        body=body,
                    )
                yield response.aiter_bytes()
            finally:
                await response.aclose()


class MistralOcrProvider(OcrProvider):
    def __init__(self, client: MistralClient, model: str = "mistral-ocr-latest") -> None:
        self.client = client
        self.model = model

    async def extract(self, path: Path) -> OcrResult:
        file_id = await self.client.upload_file(path)
        LOGGER.info("Upload complete for %s (id=%s)", path.name, file_id)
        return await self.client.ocr(file_id, model=self.model)


class MistralEmbeddingProvider(EmbeddingProvider):
    def __init__(self, client: MistralClient, model: str = "mistral-embed") -> None:
        self.client = client
        self.model_name = model

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if not texts:
            return []
        return await self.client.embeddings(texts, model=self.model_name)


class MistralCompletionProvider(CompletionProvider):
    def __init__(
        self,
        client: MistralClient,
        model: str = "mistral-large-latest",
        *,
        max_tokens: int = 2000,
        temperature: float = 0.7,
        top_p: float = 1.0,
        frequency_penalty: float = 0.2,
        presence_penalty: float = 0.1,
    ) -> None:
        self.client = client
        self.model_name = model
        self.parameters: Dict[str, Any] = {
            "max_tokens": max_tokens,
            "temperature": temperature,
            "top_p": top_p,
            "frequency_penalty": frequency_penalty,
            "presence_penalty": presence_penalty,
        }

    def stream_chat(self, messages: Sequence[ChatMessage]):
        payload = {"model": self.model_name, "messages": list(messages), **self.parameters}
        return self.client.stream_chat_completion(payload)
