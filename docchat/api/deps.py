from collections.abc import AsyncGenerator
from typing import Annotated, Callable, Optional

from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt
from jose.exceptions import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from docchat.core.config import settings
from docchat.core.exceptions import AuthenticationError
from docchat.db.session import AsyncSessionLocal
from docchat.services.chat.synthesizer import AnswerSynthesizer
from docchat.services.embedding.embedder import Embedder
from docchat.services.ingestion.storage import ObjectStorage
from docchat.services.rate_limit import RateLimiter
from docchat.services.retrieval.retriever import HybridRetriever

logger = logging.getLogger(__name__)

# Missing credentials are reported as our own 401 rather than FastAPI's default
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session."""
    async with AsyncSessionLocal() as session:
        yield session


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Security(security)],
) -> dict:
    """Get the current authenticated user from a signed JWT bearer token."""
    if credentials is None:
        raise AuthenticationError("Missing bearer token")
    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.JWT_SECRET,
            algorithms=settings.JWT_ALGORITHMS,
            audience=settings.JWT_AUDIENCE,
            options={"verify_aud": settings.JWT_AUDIENCE is not None},
        )
    except JWTError as e:
        logger.info(f"Rejected bearer token: {str(e)}")
        raise AuthenticationError("Invalid authentication credentials")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid authentication credentials")
    return {"id": user_id}


def get_storage() -> ObjectStorage:
    return ObjectStorage()


def get_ocr_trigger() -> Callable[[str], object]:
    """Fire-and-forget trigger for the OCR stage."""
    from docchat.worker.tasks.pipeline_tasks import run_ocr_job

    return run_ocr_job.delay


def get_retriever(db: AsyncSession = Depends(get_db)) -> HybridRetriever:
    return HybridRetriever(db, Embedder(db))


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter()
    return _rate_limiter


def get_synthesizer() -> AnswerSynthesizer:
    return AnswerSynthesizer()
