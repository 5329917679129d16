"""Chat session endpoints and the streamed chat turn."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.api.deps import get_current_user, get_db, get_rate_limiter, get_retriever, get_synthesizer
from docchat.core.config import settings
from docchat.core.exceptions import RateLimitExceeded
from docchat.db.models.chat_message import MessageRole
from docchat.schemas.chat import (
    ChatMessageOut,
    ChatSessionCreate,
    ChatSessionDetail,
    ChatSessionOut,
    ChatSessionUpdate,
    ChatTurnRequest,
)
from docchat.services.chat.synthesizer import AnswerSynthesizer
from docchat.services.conversation.service import ChatSessionService
from docchat.services.documents import DocumentService
from docchat.services.rate_limit import RateLimiter
from docchat.services.retrieval.retriever import HybridRetriever

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/sessions", status_code=status.HTTP_201_CREATED)
async def create_session(
    request: ChatSessionCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ChatSessionOut:
    session = await ChatSessionService(db).create_session(
        owner_id=current_user["id"],
        document_id=request.document_id,
        title=request.title,
    )
    return ChatSessionOut.model_validate(session.to_dict())


@router.get("/sessions")
async def list_sessions(
    document_id: Optional[str] = Query(None, description="Only sessions about this document"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[ChatSessionOut]:
    sessions = await ChatSessionService(db).list_sessions(current_user["id"], document_id)
    return [ChatSessionOut.model_validate(s.to_dict()) for s in sessions]


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ChatSessionDetail:
    """Get a session with its messages in sequence order."""
    session = await ChatSessionService(db).get_session(session_id, current_user["id"], with_messages=True)
    return ChatSessionDetail(
        **session.to_dict(),
        messages=[ChatMessageOut.model_validate(m.to_dict()) for m in session.messages],
    )


@router.patch("/sessions/{session_id}")
async def rename_session(
    session_id: str,
    request: ChatSessionUpdate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ChatSessionOut:
    session = await ChatSessionService(db).update_title(session_id, current_user["id"], request.title)
    return ChatSessionOut.model_validate(session.to_dict())


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await ChatSessionService(db).delete_session(session_id, current_user["id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sessions/{session_id}/messages")
async def send_message(
    session_id: str,
    request: ChatTurnRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
    retriever: HybridRetriever = Depends(get_retriever),
    synthesizer: AnswerSynthesizer = Depends(get_synthesizer),
) -> StreamingResponse:
    """
    Run one chat turn.

    Ownership of the session and its document is checked before anything else
    happens. The answer is streamed as plain text; the assistant message is
    stored by the server once the stream completes.
    """
    owner_id = current_user["id"]
    sessions = ChatSessionService(db)

    session = await sessions.get_session(session_id, owner_id)
    document = await DocumentService(db).get_document(session.document_id, owner_id)
    # Retrieval may roll the session back and expire these instances
    document_id = document.id
    filename = document.filename

    if not await rate_limiter.allow_chat(owner_id):
        raise RateLimitExceeded(
            "Too many chat requests; slow down",
            {"window_seconds": settings.RATE_LIMIT_CHAT_WINDOW_SECONDS},
        )

    user_message = await sessions.append_message(session_id, MessageRole.USER, request.message)
    user_sequence = user_message.sequence_number
    history = [
        {"role": m.role.value, "content": m.content}
        for m in await sessions.recent_messages(
            session_id, settings.CHAT_HISTORY_LIMIT, before_sequence=user_sequence
        )
    ]

    retrieval = await retriever.retrieve(document_id, request.message, owner_id)
    logger.info(
        f"Chat turn #{user_sequence} on session {session_id}: "
        f"{len(retrieval.chunks)} chunks via {retrieval.tier}"
    )

    return StreamingResponse(
        synthesizer.stream(session_id, filename, retrieval, history, request.message),
        media_type="text/plain; charset=utf-8",
        headers={"X-Retrieval-Tier": retrieval.tier},
    )
