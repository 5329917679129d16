"""Processing job lifecycle."""

import logging
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.core.exceptions import InvalidJobTransition, JobConflictError, NotFoundError
from docchat.db.models.processing_job import JobStage, JobStatus, ProcessingJob

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.PROCESSING)

Payload = Union[BaseModel, Dict[str, Any], None]


def _to_dict(payload: Payload) -> Optional[Dict[str, Any]]:
    if payload is None:
        return None
    if isinstance(payload, BaseModel):
        return payload.model_dump(mode="json")
    return dict(payload)


class JobService:
    """Creates, claims and closes processing jobs.

    ``queued -> processing -> done|failed``; a job may also fail straight from
    ``queued``. Terminal jobs are never modified.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, job_id: str) -> ProcessingJob:
        job = await self.db.get(ProcessingJob, job_id, populate_existing=True)
        if not job:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    async def list_for_document(self, document_id: str) -> List[ProcessingJob]:
        result = await self.db.execute(
            select(ProcessingJob)
            .where(ProcessingJob.document_id == document_id)
            .order_by(ProcessingJob.created_at)
        )
        return list(result.scalars().all())

    async def active_job(self, document_id: str, stage: JobStage) -> Optional[ProcessingJob]:
        result = await self.db.execute(
            select(ProcessingJob).where(
                ProcessingJob.document_id == document_id,
                ProcessingJob.stage == stage,
                ProcessingJob.status.in_(ACTIVE_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def enqueue(
        self,
        document_id: str,
        stage: JobStage,
        input_data: Payload = None,
        commit: bool = True,
    ) -> ProcessingJob:
        """Create a queued job.

        With ``commit=False`` the job is only flushed and the caller commits it
        together with its own changes.

        Raises:
            JobConflictError: a queued or processing job already exists for this document and stage
        """
        if await self.active_job(document_id, stage):
            raise JobConflictError(f"A {stage.value} job is already active for document {document_id}")

        job = ProcessingJob(
            document_id=document_id,
            stage=stage,
            status=JobStatus.QUEUED,
            input_data=_to_dict(input_data) or {},
        )
        self.db.add(job)
        try:
            if commit:
                await self.db.commit()
            else:
                await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            raise JobConflictError(
                f"A {stage.value} job is already active for document {document_id}"
            ) from e
        logger.info(f"Enqueued {stage.value} job {job.id} for document {document_id}")
        return job

    async def claim(self, job_id: str) -> Optional[ProcessingJob]:
        """Move a queued job to processing. Returns None if another worker got it first."""
        result = await self.db.execute(
            update(ProcessingJob)
            .where(ProcessingJob.id == job_id, ProcessingJob.status == JobStatus.QUEUED)
            .values(
                status=JobStatus.PROCESSING,
                started_at=datetime.now(UTC),
                attempts=ProcessingJob.attempts + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        if result.rowcount != 1:
            logger.warning(f"Job {job_id} is not queued; skipping")
            return None
        return await self.get(job_id)

    async def _close(
        self,
        job_id: str,
        status: JobStatus,
        output_data: Payload,
        error_message: Optional[str] = None,
        commit: bool = True,
    ) -> ProcessingJob:
        result = await self.db.execute(
            update(ProcessingJob)
            .where(ProcessingJob.id == job_id, ProcessingJob.status.in_(ACTIVE_STATUSES))
            .values(
                status=status,
                output_data=_to_dict(output_data),
                error_message=error_message,
                completed_at=datetime.now(UTC),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            job = await self.get(job_id)
            raise InvalidJobTransition(
                f"Job {job_id} is {job.status.value} and cannot move to {status.value}"
            )
        if commit:
            await self.db.commit()
        return await self.get(job_id)

    async def complete(self, job_id: str, output_data: Payload = None, commit: bool = True) -> ProcessingJob:
        job = await self._close(job_id, JobStatus.DONE, output_data, commit=commit)
        logger.info(f"Job {job_id} ({job.stage.value}) done")
        return job

    async def fail(
        self,
        job_id: str,
        error_message: str,
        output_data: Payload = None,
        commit: bool = True,
    ) -> ProcessingJob:
        job = await self._close(job_id, JobStatus.FAILED, output_data, error_message=error_message, commit=commit)
        logger.error(f"Job {job_id} ({job.stage.value}) failed: {error_message}")
        return job
