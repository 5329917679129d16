"""Two-pass OCR: required page text, then best-effort structured annotations."""

import logging
from typing import List, Optional, Tuple

from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_incrementing

from docchat.core.config import settings
from docchat.core.exceptions import OCRExtractionError
from docchat.schemas.pipeline import BBoxAnnotation, OCRResult, Page
from docchat.services.ocr.client import OCRClient

logger = logging.getLogger(__name__)


class OCRExtractor:
    """Runs both OCR passes against an :class:`OCRClient`.

    Pass 1 is retried (``OCR_MAX_ATTEMPTS`` attempts, waits growing by
    ``OCR_BACKOFF_SECONDS``); an empty page list counts as a failure. Pass 2
    covers the first ``OCR_ANNOTATION_PAGES`` pages and never fails the job.
    """

    def __init__(
        self,
        client: OCRClient,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        annotation_pages: Optional[int] = None,
    ):
        self.client = client
        self.max_attempts = max_attempts or settings.OCR_MAX_ATTEMPTS
        self.backoff_seconds = settings.OCR_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.annotation_pages = annotation_pages or settings.OCR_ANNOTATION_PAGES

    async def _extract_once(self, data: bytes, mime_type: str, filename: str) -> List[Page]:
        raw_pages = await self.client.extract_pages(data, mime_type, filename)
        if not raw_pages:
            raise OCRExtractionError("OCR returned no pages")
        return [Page(index=p["index"], text=p.get("markdown") or "") for p in raw_pages]

    async def extract_text(self, data: bytes, mime_type: str, filename: str) -> Tuple[List[Page], int]:
        """Pass 1. Returns the pages and the number of attempts used."""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_seconds, increment=self.backoff_seconds),
        )
        attempts = 0
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    if attempts > 1:
                        logger.warning(f"OCR attempt {attempts}/{self.max_attempts} for {filename}")
                    pages = await self._extract_once(data, mime_type, filename)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise OCRExtractionError(
                f"OCR failed after {self.max_attempts} attempts. Last error: {last_error}",
                {"attempts": self.max_attempts},
            ) from last_error
        logger.info(f"OCR pass 1 extracted {len(pages)} pages in {attempts} attempt(s)")
        return pages, attempts

    async def annotate(self, data: bytes, mime_type: str, filename: str, page_count: int) -> Tuple[dict, List[BBoxAnnotation]]:
        """Pass 2. Any failure yields an empty annotation."""
        if not self.client.supports_annotations:
            return {}, []

        page_indexes = list(range(min(self.annotation_pages, page_count)))
        try:
            result = await self.client.annotate(data, mime_type, filename, page_indexes)
        except Exception as e:
            logger.warning(f"OCR annotation pass failed for {filename}, continuing without it: {str(e)}")
            return {}, []

        bboxes = [BBoxAnnotation.model_validate(b) for b in result.get("bbox_annotations") or []]
        return result.get("document_annotation") or {}, bboxes

    async def extract(self, data: bytes, mime_type: str, filename: str) -> OCRResult:
        pages, attempts = await self.extract_text(data, mime_type, filename)
        document_annotation, bboxes = await self.annotate(data, mime_type, filename, len(pages))
        return OCRResult(
            pages=pages,
            document_annotation=document_annotation,
            bbox_annotations=bboxes,
            attempts=attempts,
            model=self.client.model,
        )
