import asyncio
from datetime import datetime, UTC
import logging
import weakref
from typing import Dict, List, Optional, Any

from sqlalchemy import select, desc, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from docchat.core.exceptions import ForbiddenError, NotFoundError
from docchat.db.models.chat_message import ChatMessage, MessageRole
from docchat.db.models.chat_session import ChatSession
from docchat.db.models.document import Document

logger = logging.getLogger(__name__)

TITLE_FROM_MESSAGE_CHARS = 60

# One lock per chat session id, shared by every service instance in the process
_session_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def session_lock(session_id: str) -> asyncio.Lock:
    lock = _session_locks.get(session_id)
    if lock is None:
        lock = asyncio.Lock()
        _session_locks[session_id] = lock
    return lock


class ChatSessionService:
    """Service for managing chat sessions and their messages."""

    def __init__(self, db_session: AsyncSession):
        """Initialize the service with a database session.

        Args:
            db_session: SQLAlchemy async session
        """
        self.db = db_session

    async def create_session(
        self,
        owner_id: str,
        document_id: str,
        title: Optional[str] = None,
    ) -> ChatSession:
        """Create a chat session over one of the caller's documents.

        Args:
            owner_id: Caller identity
            document_id: Document the session is about
            title: Optional title

        Returns:
            The created ChatSession
        """
        document = await self.db.get(Document, document_id)
        if not document:
            raise NotFoundError(f"Document {document_id} not found")
        if document.owner_id != owner_id:
            raise ForbiddenError("Document not owned by user")

        try:
            session = ChatSession(owner_id=owner_id, document_id=document_id, title=title)
            self.db.add(session)
            await self.db.commit()
            await self.db.refresh(session)

            logger.info(f"Created chat session {session.id} for document {document_id}")
            return session

        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error creating chat session: {str(e)}")
            raise

    async def get_session(
        self,
        session_id: str,
        owner_id: str,
        with_messages: bool = False,
    ) -> ChatSession:
        """Get a caller-owned session.

        Raises:
            NotFoundError: no such session
            ForbiddenError: session belongs to someone else
        """
        query = select(ChatSession).where(ChatSession.id == session_id)
        if with_messages:
            query = query.options(selectinload(ChatSession.messages))

        result = await self.db.execute(query)
        session = result.scalars().first()

        if not session:
            raise NotFoundError("Chat session not found")
        if session.owner_id != owner_id:
            raise ForbiddenError("Forbidden: session not owned by user")
        return session

    async def list_sessions(self, owner_id: str, document_id: Optional[str] = None) -> List[ChatSession]:
        query = select(ChatSession).where(ChatSession.owner_id == owner_id)
        if document_id:
            query = query.where(ChatSession.document_id == document_id)
        result = await self.db.execute(query.order_by(desc(ChatSession.updated_at)))
        return list(result.scalars().all())

    async def update_title(self, session_id: str, owner_id: str, title: str) -> ChatSession:
        session = await self.get_session(session_id, owner_id)
        try:
            session.title = title
            await self.db.commit()
            await self.db.refresh(session)
            logger.info(f"Renamed chat session {session_id}")
            return session
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error updating chat session {session_id}: {str(e)}")
            raise

    async def delete_session(self, session_id: str, owner_id: str) -> None:
        session = await self.get_session(session_id, owner_id, with_messages=True)
        try:
            await self.db.delete(session)
            await self.db.commit()
            logger.info(f"Deleted chat session {session_id}")
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error deleting chat session {session_id}: {str(e)}")
            raise

    async def append_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        meta_data: Optional[Dict[str, Any]] = None,
    ) -> ChatMessage:
        """Append a message with the next sequence number.

        The counter is advanced with a single UPDATE ... RETURNING in the same
        transaction as the insert, and appends to one session are serialized in
        this process, so sequence numbers stay gapless and unique.

        Args:
            session_id: Chat session ID
            role: user or assistant
            content: Message text
            meta_data: Optional metadata dictionary

        Returns:
            The stored ChatMessage
        """
        async with session_lock(session_id):
            try:
                result = await self.db.execute(
                    update(ChatSession)
                    .where(ChatSession.id == session_id)
                    .values(
                        message_count=ChatSession.message_count + 1,
                        updated_at=datetime.now(UTC),
                    )
                    .returning(ChatSession.message_count, ChatSession.title)
                    .execution_options(synchronize_session=False)
                )
                row = result.first()
                if row is None:
                    raise NotFoundError("Chat session not found")
                sequence_number, title = row

                if title is None and role == MessageRole.USER:
                    await self.db.execute(
                        update(ChatSession)
                        .where(ChatSession.id == session_id)
                        .values(title=content.strip()[:TITLE_FROM_MESSAGE_CHARS])
                        .execution_options(synchronize_session=False)
                    )

                message = ChatMessage(
                    session_id=session_id,
                    role=role,
                    content=content,
                    sequence_number=sequence_number,
                    meta_data=meta_data or {},
                )
                self.db.add(message)
                await self.db.commit()

                logger.info(f"Added {role.value} message #{sequence_number} to chat session {session_id}")
                return message

            except Exception as e:
                await self.db.rollback()
                logger.error(f"Error adding message to chat session {session_id}: {str(e)}")
                raise

    async def recent_messages(
        self,
        session_id: str,
        limit: int,
        before_sequence: Optional[int] = None,
    ) -> List[ChatMessage]:
        """The last ``limit`` messages of a session, oldest first.

        ``before_sequence`` excludes that message and everything after it.
        """
        query = select(ChatMessage).where(ChatMessage.session_id == session_id)
        if before_sequence is not None:
            query = query.where(ChatMessage.sequence_number < before_sequence)
        result = await self.db.execute(
            query.order_by(desc(ChatMessage.sequence_number)).limit(limit)
        )
        return list(reversed(result.scalars().all()))
