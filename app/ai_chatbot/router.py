"""
FastAPI Router for financial questions
Answers a question from monthly snapshots, streamed or as one JSON body
"""
import logging
from contextlib import aclosing
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings
from app.core.security import AuthenticatedUser, get_authenticated_user
from app.db.session import session_scope
from app.dependencies import (
    get_app_settings,
    get_db_session,
    get_db_sessionmaker,
    get_embedder,
    get_llm_provider,
)
from app.quickbooks import CredentialStore

from .answer_stream import AnswerWriter, QueryLogHook, StreamingAnswerEmitter
from .llm_providers import EmbeddingClient, LLMProvider, LLMProviderError
from .query_planner import PlanningContext, QueryPlanner
from .sql_generator import SQLGenerator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["AI Query"])


class QueryRequest(BaseModel):
    """Request model for a financial question"""
    model_config = ConfigDict(populate_by_name=True)

    query: str = Field(min_length=1)
    realm_id: str = Field(alias="realmId", min_length=1)
    user_id: str = Field(alias="userId", min_length=1)
    stream: bool = False


class QueryResponse(BaseModel):
    """Response model for a non-streaming answer"""
    response: str
    rows_returned: int
    months: List[str]
    tokens_in: int
    tokens_out: int
    coverage: float
    strategy: Optional[str] = None


def get_today() -> date:
    """Caller's calendar date (overridden in tests)"""
    return date.today()


def _authorize(payload: QueryRequest, user: AuthenticatedUser, session: Session) -> None:
    if payload.user_id != user.user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="user_mismatch")
    store = CredentialStore(session)
    linked = store.realm_for_user(user.user_id) == payload.realm_id
    if not linked and store.get(user.user_id, payload.realm_id) is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="realm_not_linked")


def build_planner(
    settings: Settings,
    provider: Optional[LLMProvider],
    embedder: Optional[EmbeddingClient],
) -> QueryPlanner:
    generator = SQLGenerator(provider, settings.planner) if provider is not None else None
    return QueryPlanner.default(generator, embedder)


@router.post("/query", response_model=QueryResponse)
async def answer_query(
    payload: QueryRequest,
    user: AuthenticatedUser = Depends(get_authenticated_user),
    db: Session = Depends(get_db_session),
    session_factory: sessionmaker = Depends(get_db_sessionmaker),
    settings: Settings = Depends(get_app_settings),
    provider: Optional[LLMProvider] = Depends(get_llm_provider),
    embedder: Optional[EmbeddingClient] = Depends(get_embedder),
    today: date = Depends(get_today),
):
    """
    Answer a financial question

    Request body:
    - query: Natural language question
    - realmId: Realm whose snapshots are searched
    - userId: Caller (must match the bearer token)
    - stream: Return text/event-stream instead of JSON

    Streaming events are ``{"type": "token"|"error"|"done", ...}``; ``done`` is
    always the last event.
    """
    _authorize(payload, user, db)
    planner = build_planner(settings, provider, embedder)
    hooks = [QueryLogHook(session_factory)]

    context = PlanningContext(
        realm_id=payload.realm_id, today=today, session=db, config=settings.planner
    )

    if payload.stream:
        emitter = StreamingAnswerEmitter(
            payload.query, planner, context, provider, hooks, user_id=user.user_id
        )

        async def event_stream():
            # The request-scoped session may be closed before the body is sent.
            with session_scope(session_factory) as stream_session:
                context.session = stream_session
                async with aclosing(emitter.events()) as events:
                    async for event in events:
                        yield event

        # The audit write runs in the threadpool after the last chunk is sent.
        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
            background=BackgroundTask(emitter.run_post_completion),
        )

    writer = AnswerWriter(payload.query, planner, context, provider, hooks, user_id=user.user_id)
    try:
        result = await writer.answer()
    except LLMProviderError as e:
        logger.error(f"Answer generation failed: {str(e)}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="answer_generation_failed")
    return QueryResponse(**result)
