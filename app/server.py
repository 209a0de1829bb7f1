"""HTTP chat endpoint: blocking JSON answers and Server-Sent Events streaming."""

from __future__ import annotations

from contextlib import aclosing
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional

import orjson
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from chains.conversation import AnswerComplete
from chains.conversational_chain import ConversationalRetrievalChain
from chains.sessions import SessionStore
from common.exceptions import (
    ConcurrentTurnError,
    ConfigurationError,
    DocChatError,
    SourceError,
)
from common.logger import get_logger

log = get_logger(__name__)

INDEX_PAGE = Path(__file__).resolve().parent / "static" / "index.html"


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    session_id: Optional[str] = None


class ChatResponse(BaseModel):
    answer: str
    sources: List[str]
    session_id: str
    standalone_question: str


def get_http_status_code(exc: DocChatError) -> int:
    if isinstance(exc, ConcurrentTurnError):
        return 409
    if isinstance(exc, SourceError):
        return 400
    if isinstance(exc, ConfigurationError):
        return 500
    # model, embedding and store backends
    return 502


def _sse(event: str, data: dict) -> bytes:
    return b"event: " + event.encode() + b"\ndata: " + orjson.dumps(data) + b"\n\n"


async def _sse_events(
    chain: ConversationalRetrievalChain,
    sessions: SessionStore,
    session_id: str,
    message: str,
) -> AsyncIterator[bytes]:
    """
    token events while generating, then sources and done. History is
    committed only when the stream completed; a client disconnect closes this
    generator, which cancels generation.
    """
    try:
        async with sessions.turn(session_id):
            yield _sse("session", {"session_id": session_id})
            state = sessions.get(session_id)
            async with aclosing(chain.astream(message, state)) as events:
                async for event in events:
                    if isinstance(event, AnswerComplete):
                        sessions.commit(session_id, event.state)
                        yield _sse("sources", {"sources": event.sources})
                        yield _sse("done", {"answer": event.text})
                    else:
                        yield _sse("token", {"token": event.text})
    except DocChatError as e:
        log.error("Chat turn failed for session %s: %s", session_id, e)
        yield _sse("error", e.to_dict())


def create_app(
    chain: ConversationalRetrievalChain | None = None,
    chain_factory: Callable[[], ConversationalRetrievalChain] | None = None,
    sessions: SessionStore | None = None,
) -> FastAPI:
    app = FastAPI(
        title="docchat",
        description="Conversational question answering over indexed internal documents.",
    )
    app.state.sessions = sessions or SessionStore()
    app.state.chain = chain

    def get_chain() -> ConversationalRetrievalChain:
        if app.state.chain is None:
            if chain_factory is None:
                from chains.qa_chain_builder import build_chat_chain

                app.state.chain = build_chat_chain()
            else:
                app.state.chain = chain_factory()
        return app.state.chain

    @app.exception_handler(DocChatError)
    async def docchat_error_handler(request: Request, exc: DocChatError) -> JSONResponse:
        log.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=get_http_status_code(exc), content=exc.to_dict())

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        return HTMLResponse(INDEX_PAGE.read_text(encoding="utf-8"))

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.post("/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest) -> ChatResponse:
        sessions: SessionStore = app.state.sessions
        chain = get_chain()
        async with sessions.turn(request.session_id) as session_id:
            result = await run_in_threadpool(
                chain.answer, request.message, sessions.get(session_id)
            )
            sessions.commit(session_id, result.state)
        return ChatResponse(
            answer=result.text,
            sources=result.sources,
            session_id=session_id,
            standalone_question=result.standalone_question,
        )

    @app.post("/chat/stream")
    async def chat_stream(request: ChatRequest) -> StreamingResponse:
        sessions: SessionStore = app.state.sessions
        chain = get_chain()
        session_id = request.session_id or sessions.new_session_id()
        if sessions.busy(session_id):
            raise ConcurrentTurnError(
                "Session already has a turn in progress", context={"session_id": session_id}
            )
        return StreamingResponse(
            _sse_events(chain, sessions, session_id, request.message),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.delete("/sessions/{session_id}")
    async def end_session(session_id: str) -> dict:
        app.state.sessions.end(session_id)
        return {"session_id": session_id, "ended": True}

    return app


def main():
    import uvicorn

    from common.config import yaml_config

    uvicorn.run(create_app(), host=yaml_config.server.host, port=yaml_config.server.port)


if __name__ == "__main__":
    main()
