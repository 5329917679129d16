import pytest

from docchat.core.exceptions import HoldUnavailableError, InvalidJobTransition, JobConflictError
from docchat.db.models.document import DocumentStatus
from docchat.db.models.processing_hold import HoldStatus
from docchat.db.models.processing_job import JobStage, JobStatus
from docchat.schemas.pipeline import OcrJobInput
from docchat.services.processing.holds import HoldService
from docchat.services.processing.jobs import JobService


@pytest.mark.asyncio
async def test_enqueue_stores_typed_input(db_session, make_document):
    document = await make_document()
    jobs = JobService(db_session)

    job = await jobs.enqueue(
        document.id,
        JobStage.OCR,
        OcrJobInput(storage_path="documents/x", mime_type="application/pdf", filename="a.pdf"),
    )

    assert job.status == JobStatus.QUEUED
    assert job.input_data == {"storage_path": "documents/x", "mime_type": "application/pdf", "filename": "a.pdf"}


@pytest.mark.asyncio
async def test_one_active_job_per_document_and_stage(db_session, make_document):
    document = await make_document()
    jobs = JobService(db_session)

    first = await jobs.enqueue(document.id, JobStage.OCR)
    with pytest.raises(JobConflictError):
        await jobs.enqueue(document.id, JobStage.OCR)

    # a different stage is independent
    await jobs.enqueue(document.id, JobStage.EMBED)

    # once terminal, the stage can be enqueued again
    await jobs.fail(first.id, "boom")
    again = await jobs.enqueue(document.id, JobStage.OCR)
    assert again.id != first.id


@pytest.mark.asyncio
async def test_claim_only_succeeds_once(db_session, make_document):
    document = await make_document()
    jobs = JobService(db_session)
    job = await jobs.enqueue(document.id, JobStage.OCR)

    claimed = await jobs.claim(job.id)
    assert claimed.status == JobStatus.PROCESSING
    assert claimed.attempts == 1
    assert claimed.started_at is not None

    assert await jobs.claim(job.id) is None


@pytest.mark.asyncio
async def test_terminal_jobs_are_immutable(db_session, make_document):
    document = await make_document()
    jobs = JobService(db_session)
    job = await jobs.enqueue(document.id, JobStage.EMBED)
    await jobs.claim(job.id)

    done = await jobs.complete(job.id, {"chunk_count": 3})
    assert done.status == JobStatus.DONE
    assert done.output_data == {"chunk_count": 3}
    assert done.completed_at is not None

    with pytest.raises(InvalidJobTransition):
        await jobs.fail(job.id, "too late")
    with pytest.raises(InvalidJobTransition):
        await jobs.complete(job.id)

    assert (await jobs.get(job.id)).status == JobStatus.DONE


@pytest.mark.asyncio
async def test_finalize_consumes_hold_exactly_once(db_session, make_document):
    document = await make_document(status=DocumentStatus.PROCESSING)
    holds = HoldService(db_session)
    hold = await holds.place_hold(document)

    assert await holds.finalize(document.id, success=True) is True
    assert await holds.finalize(document.id, success=False) is False

    await db_session.refresh(hold)
    await db_session.refresh(document)
    assert hold.status == HoldStatus.CONSUMED
    assert hold.finalized_at is not None
    assert document.status == DocumentStatus.COMPLETED


@pytest.mark.asyncio
async def test_failed_finalize_releases_hold(db_session, make_document):
    document = await make_document(status=DocumentStatus.PROCESSING)
    holds = HoldService(db_session)
    hold = await holds.place_hold(document)

    await holds.finalize(document.id, success=False)

    await db_session.refresh(hold)
    await db_session.refresh(document)
    assert hold.status == HoldStatus.RELEASED
    assert document.status == DocumentStatus.FAILED
    assert await holds.active_count(document.owner_id) == 0


@pytest.mark.asyncio
async def test_hold_limit_parks_document(db_session, make_document):
    holds = HoldService(db_session, max_active_per_user=2)
    for _ in range(2):
        assert await holds.place_hold(await make_document()) is not None

    waiting = await make_document()
    assert await holds.place_hold(waiting) is None
    assert waiting.status == DocumentStatus.AWAITING_CREDIT

    # other owners are unaffected
    assert await holds.place_hold(await make_document(owner_id="someone-else")) is not None


@pytest.mark.asyncio
async def test_second_hold_on_same_document_is_refused(db_session, make_document):
    document = await make_document()
    holds = HoldService(db_session)
    await holds.place_hold(document)

    with pytest.raises(HoldUnavailableError):
        await holds.place_hold(document)
