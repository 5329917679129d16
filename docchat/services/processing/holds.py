"""Processing holds: one reservation per processing attempt."""

import logging
from datetime import datetime, UTC
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.core.config import settings
from docchat.core.exceptions import HoldUnavailableError
from docchat.db.models.document import Document, DocumentStatus
from docchat.db.models.processing_hold import HoldStatus, ProcessingHold

logger = logging.getLogger(__name__)

FINAL_DOCUMENT_STATUSES = (DocumentStatus.COMPLETED, DocumentStatus.FAILED)


class HoldService:
    """Places holds before processing and finalizes them afterwards.

    ``finalize`` is safe to call more than once: only the first call moves the
    hold out of ``active`` and only the first call sets the final document
    status.
    """

    def __init__(self, db: AsyncSession, max_active_per_user: Optional[int] = None):
        self.db = db
        self.max_active_per_user = max_active_per_user or settings.MAX_ACTIVE_HOLDS_PER_USER

    async def active_count(self, owner_id: str) -> int:
        result = await self.db.execute(
            select(func.count(ProcessingHold.id)).where(
                ProcessingHold.owner_id == owner_id,
                ProcessingHold.status == HoldStatus.ACTIVE,
            )
        )
        return result.scalar_one()

    async def active_hold(self, document_id: str) -> Optional[ProcessingHold]:
        result = await self.db.execute(
            select(ProcessingHold).where(
                ProcessingHold.document_id == document_id,
                ProcessingHold.status == HoldStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    async def place_hold(self, document: Document) -> Optional[ProcessingHold]:
        """Reserve processing for a document.

        Returns None (and parks the document in ``awaiting_credit``) when the
        owner is at the active-hold limit.

        Raises:
            HoldUnavailableError: the document already has an active hold
        """
        if await self.active_hold(document.id):
            raise HoldUnavailableError(f"Document {document.id} is already being processed")

        if await self.active_count(document.owner_id) >= self.max_active_per_user:
            document.status = DocumentStatus.AWAITING_CREDIT
            await self.db.commit()
            logger.info(f"Owner {document.owner_id} is at the hold limit; document {document.id} awaits credit")
            return None

        hold = ProcessingHold(document_id=document.id, owner_id=document.owner_id)
        self.db.add(hold)
        await self.db.commit()
        logger.info(f"Placed hold {hold.id} on document {document.id}")
        return hold

    async def finalize(self, document_id: str, success: bool, commit: bool = True) -> bool:
        """Consume (success) or release (failure) the active hold and set the
        document's final status. With ``commit=False`` the caller commits.

        Returns:
            True if a hold was finalized by this call
        """
        now = datetime.now(UTC)
        result = await self.db.execute(
            update(ProcessingHold)
            .where(
                ProcessingHold.document_id == document_id,
                ProcessingHold.status == HoldStatus.ACTIVE,
            )
            .values(
                status=HoldStatus.CONSUMED if success else HoldStatus.RELEASED,
                finalized_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(
            update(Document)
            .where(Document.id == document_id, Document.status.not_in(FINAL_DOCUMENT_STATUSES))
            .values(
                status=DocumentStatus.COMPLETED if success else DocumentStatus.FAILED,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if commit:
            await self.db.commit()

        finalized = result.rowcount > 0
        if finalized:
            logger.info(f"Finalized hold for document {document_id} (success={success})")
        else:
            logger.warning(f"No active hold to finalize for document {document_id}")
        return finalized
