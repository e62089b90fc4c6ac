"""Retrieval-augmented chat: embed the question, fetch sections, stream the answer."""
from __future__ import annotations

import asyncio
import logging
import time
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, AsyncGenerator, AsyncIterator, List, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from alynappi.config import get_settings
from alynappi.errors import InvalidRequestError, UpstreamAPIError
from alynappi.ingest.models import SectionMatch
from alynappi.providers import (
    ChatMessage,
    CompletionProvider,
    EmbeddingProvider,
    build_completion_provider,
    build_embedding_provider,
)
from alynappi.relay import StreamRelay
from alynappi.telemetry import emit_exception, emit_retriever_event
from alynappi.vectorstore import SectionStore, get_section_store

LOGGER = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"
MISSING_CATEGORY_LABEL = "[Kategoria puuttuu]"
NO_MATCHES_TEXT = "Ei suoria osumia arkistosta."

SYSTEM_PROMPT_FI = """Rooli: Olet Äly-Nappi, avulias ja empaattinen arkistoavustaja. Vastauksesi perustuvat annettuihin Nappi-lehden ja muiden lähteiden tekstiotteisiin.

Yleiset säännöt:
Lähdemateriaali: Käytä vain annettua arkistomateriaalia. Jos tietoa ei löydy, sano: "Etsin arkistosta ahkerasti, mutta tästä aiheesta ei valitettavasti löytynyt mainintoja. 🔍 Voinko auttaa jossain muussa?"
Sävy: Ole ystävällinen, eläväinen ja asiantunteva opas.
Lähdeviitteet: Jokaisen tiedon perässä on oltava lähde muodossa: [Kategoria] Nimi, s. X. Kategoria on pakollinen.
Esim: [Lehti] Nappi_1_2025, s. 12 tai [Tutkimus] Pelkkikangas, s. 3.

Rakenne ja muotoilu:
Suosi numeroituja tai pallolistoja tapahtumien, päivämäärien ja luetteloiden kohdalla. Käytä taulukkoa vain selkeissä vertailuissa, ja pidä taulukon solut pelkkänä tekstinä.

Lopetus:
Päätä vastaus lyhyeen jatkokysymykseen ja ehdota 2-3 aiheeseen liittyvää kysymystä muodossa [[Kysymys?]] (max 60 merkkiä).

LÖYDETTY ARKISTOMATERIAALI:
{context}
"""


class MessagePart(BaseModel):
    type: str
    text: Optional[str] = None


class IncomingMessage(BaseModel):
    """One conversation message; the text is in ``content`` or the first text part."""

    role: str
    content: Optional[str] = None
    parts: Optional[List[MessagePart]] = None

    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        for part in self.parts or []:
            if part.type == "text":
                return part.text or ""
        return ""


class ChatRequest(BaseModel):
    messages: List[IncomingMessage] = Field(default_factory=list)


def parse_chat_request(payload: Any) -> List[ChatMessage]:
    """Validate a raw request body and return the normalised conversation."""

    if not isinstance(payload, dict) or not isinstance(payload.get("messages"), list):
        raise InvalidRequestError("Invalid request: messages array is required")
    try:
        request = ChatRequest.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequestError(f"Invalid request: {exc.errors()[0].get('msg', 'malformed message')}") from exc
    if not request.messages:
        raise InvalidRequestError("Invalid request: messages array is required")

    messages = [{"role": message.role, "content": message.text()} for message in request.messages]
    if not messages[-1]["content"].strip():
        raise InvalidRequestError("User question is empty")
    return messages


def format_source_label(match: SectionMatch) -> str:
    category = f"[{match.category.value}]" if match.category else MISSING_CATEGORY_LABEL
    label = f"{category} {match.title}"
    if match.page_number:
        label += f", s. {match.page_number}"
    return label


def format_context(matches: Sequence[SectionMatch]) -> str:
    """Render retrieved sections as labelled excerpts for the system prompt."""

    entries: List[str] = []
    for match in matches:
        if match.category is None:
            LOGGER.warning("Missing category for section %s (%s)", match.id, match.title)
        entries.append(f"[Lähde: {format_source_label(match)}]\n{match.content}")
    return CONTEXT_SEPARATOR.join(entries)


def build_system_prompt(context: str) -> str:
    return SYSTEM_PROMPT_FI.format(context=context or NO_MATCHES_TEXT)


@dataclass(slots=True)
class ChatServiceConfig:
    match_threshold: float = 0.15
    match_count: int = 8


class AnswerStream:
    """Relayed answer fragments that own the open upstream completion.

    The upstream is already open when the stream is created, so closing the
    stream releases it even if iteration never started.
    """

    def __init__(self, fragments: AsyncGenerator[bytes, None], stack: AsyncExitStack) -> None:
        self._fragments = fragments
        self._stack = stack

    def __aiter__(self) -> AnswerStream:
        return self

    async def __anext__(self) -> bytes:
        return await self._fragments.__anext__()

    async def aclose(self) -> None:
        try:
            await self._fragments.aclose()
        finally:
            await self._stack.aclose()


class ChatService:
    """Answer a conversation with archive excerpts as grounding."""

    def __init__(
        self,
        *,
        embeddings: EmbeddingProvider,
        completions: CompletionProvider,
        store: SectionStore,
        config: ChatServiceConfig | None = None,
    ) -> None:
        self.embeddings = embeddings
        self.completions = completions
        self.store = store
        self.config = config or ChatServiceConfig()

    async def retrieve(self, question: str, *, req_id: str) -> List[SectionMatch]:
        started = time.perf_counter()
        vectors = await self.embeddings.embed([question.replace("\n", " ")])
        if not vectors or not vectors[0]:
            raise UpstreamAPIError("Invalid embedding response format")

        matches = await asyncio.to_thread(
            self.store.match_sections,
            vectors[0],
            threshold=self.config.match_threshold,
            count=self.config.match_count,
        )
        emit_retriever_event(
            req_id=req_id,
            query=question,
            threshold=self.config.match_threshold,
            match_count=self.config.match_count,
            results=[
                {
                    "id": match.id,
                    "title": match.title,
                    "category": match.category.value if match.category else None,
                    "page_number": match.page_number,
                    "similarity": round(match.similarity, 4),
                }
                for match in matches
            ],
            duration_ms=(time.perf_counter() - started) * 1000.0,
        )
        return matches

    async def open_stream(self, payload: Any) -> AnswerStream:
        """Prepare the answer stream.

        Everything that can fail with a client or upstream error happens
        before this coroutine returns, so callers can still choose the HTTP
        status. The returned iterator yields UTF-8 text fragments.
        """

        req_id = uuid.uuid4().hex
        messages = parse_chat_request(payload)
        question = messages[-1]["content"]
        LOGGER.info("Chat request %s with %s message(s)", req_id, len(messages))

        try:
            matches = await self.retrieve(question, req_id=req_id)
            conversation = [{"role": "system", "content": build_system_prompt(format_context(matches))}, *messages]

            stack = AsyncExitStack()
            chunks = await stack.enter_async_context(self.completions.stream_chat(conversation))
        except Exception as error:
            emit_exception(module=f"{__name__}.open_stream", error=error, req_id=req_id)
            raise

        @asynccontextmanager
        async def opened() -> AsyncIterator[AsyncIterator[bytes]]:
            async with stack:
                yield chunks

        return AnswerStream(StreamRelay(req_id).relay(opened()), stack)


@lru_cache()
def get_chat_service() -> ChatService:
    settings = get_settings()
    return ChatService(
        embeddings=build_embedding_provider(settings),
        completions=build_completion_provider(settings),
        store=get_section_store(),
        config=ChatServiceConfig(
            match_threshold=settings.match_threshold,
            match_count=settings.match_count,
        ),
    )


def reset_chat_service_cache() -> None:
    get_chat_service.cache_clear()  # type: ignore[attr-defined]
