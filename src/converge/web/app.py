"""FastAPI application exposing the Converge services over HTTP."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, List

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from converge.chat.orchestrator import ChatSession
from converge.config import AppConfig
from converge.errors import (
    ApiError,
    ConcurrencyRejected,
    ConfigurationError,
    ConvergeError,
    TransportError,
)
from converge.models import SimilarDocument
from converge.services import Services, build_services

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Converge API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class SearchPayload(BaseModel):
    query: str
    top_k: int | None = None


class RelatedPayload(BaseModel):
    note: str
    threshold: float | None = None
    add: List[str] = []


class ChatPayload(BaseModel):
    message: str
    context: List[str] = []
    stream: bool = True


def configure(config: AppConfig) -> Services:
    """Build the services for ``config`` and attach them to the app."""
    services = build_services(config)
    app.state.services = services
    app.state.chat = services.chat_session()
    return services


def _services() -> Services:
    services = getattr(app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Server is not configured with a vault")
    return services


def _chat() -> ChatSession:
    _services()
    return app.state.chat


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ConcurrencyRejected):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (ConfigurationError, ValueError)):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, FileNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (ApiError, TransportError)):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _similar_to_dict(result: SimilarDocument) -> dict[str, Any]:
    return {
        "note": result.document_ref,
        "score": result.score,
        "selected": result.selected,
        "matching_chunks": [
            {
                "text": match.text,
                "start_line": match.start_line,
                "end_line": match.end_line,
                "score": match.score,
            }
            for match in result.matching_chunks
        ],
    }


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")


@app.on_event("shutdown")
async def shutdown_event() -> None:
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.aclose()


@app.get("/index")
async def index_status() -> dict[str, Any]:
    service = _services().index
    snapshot = service.index
    return {
        "chunks": len(snapshot),
        "documents": len(snapshot.document_refs()),
        "last_updated": snapshot.last_updated,
        "rebuilding": service.is_rebuilding,
    }


@app.post("/index")
async def rebuild_index() -> dict[str, Any]:
    service = _services().index
    try:
        stats = await service.rebuild()
    except ConvergeError as exc:
        raise _http_error(exc) from exc

    return {
        "status": "ok",
        "stats": {
            "documents": stats.documents,
            "chunks": stats.chunks,
            "failed_chunks": stats.failed_chunks,
            "skipped_documents": stats.skipped_documents,
            "persisted": stats.persisted,
        },
    }


@app.post("/search")
async def search_chunks(payload: SearchPayload) -> dict[str, Any]:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    services = _services()
    top_k = max(1, min(payload.top_k or services.config.top_k, 50))
    try:
        results = await services.index.search(query, top_k)
    except ConvergeError as exc:
        raise _http_error(exc) from exc

    return {
        "results": [
            {
                "note": result.chunk.document_ref,
                "text": result.chunk.text,
                "start_line": result.chunk.start_line,
                "end_line": result.chunk.end_line,
                "score": result.score,
            }
            for result in results
        ]
    }


@app.post("/related")
async def related_notes(payload: RelatedPayload) -> dict[str, Any]:
    services = _services()
    session = services.discovery_session()
    try:
        if payload.threshold is not None:
            session.set_threshold(payload.threshold)
        await session.discover(payload.note)
        for ref in payload.add:
            session.add_manual(ref)
    except (ConvergeError, OSError, ValueError) as exc:
        raise _http_error(exc) from exc

    return {
        "note": payload.note,
        "threshold": session.threshold,
        "results": [_similar_to_dict(result) for result in session.visible()],
    }


@app.get("/chat")
async def chat_history() -> dict[str, Any]:
    session = _chat()
    usage = session.token_usage()
    return {
        "messages": [message.to_dict() for message in session.messages],
        "context": list(session.context_documents),
        "tokens": {
            "estimated": usage.tokens,
            "max": usage.max_tokens,
            "ratio": usage.ratio,
            "level": usage.level,
        },
    }


@app.delete("/chat")
async def clear_chat() -> dict[str, str]:
    try:
        _chat().clear()
    except ConcurrencyRejected as exc:
        raise _http_error(exc) from exc
    return {"status": "ok"}


@app.post("/chat")
async def chat(payload: ChatPayload):
    session = _chat()
    try:
        for ref in payload.context:
            session.add_context(ref)
    except FileNotFoundError as exc:
        raise _http_error(exc) from exc

    if not payload.stream:
        try:
            reply = await session.send(payload.message, streaming=False)
        except (ConvergeError, ValueError) as exc:
            raise _http_error(exc) from exc
        return {"response": reply}

    # The first delta is read before the response starts, so guard and upstream
    # failures up to that point still map to a status code.
    stream = session.stream(payload.message)
    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        first = ""
    except (ConvergeError, ValueError) as exc:
        raise _http_error(exc) from exc

    async def _deltas() -> AsyncIterator[str]:
        try:
            if first:
                yield first
            async for delta in stream:
                yield delta
        except ConvergeError as exc:
            LOGGER.error("Chat stream aborted: %s", exc)
            yield f"\n[error] {exc}"
        finally:
            await stream.aclose()

    return StreamingResponse(_deltas(), media_type="text/plain; charset=utf-8")
