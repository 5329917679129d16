from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from docchat.api.router import api_router
from docchat.core.config import settings
from docchat.core.exceptions import DocChatError
from docchat.core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="DocChat API",
    description="Upload documents and chat with them, with page and section citations",
    version="0.1.0",
    debug=settings.DEBUG,
)

# Set up CORS
origins = (
    [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]
    if "," in settings.CORS_ORIGINS
    else [settings.CORS_ORIGINS]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Retrieval-Tier"],
)


@app.exception_handler(DocChatError)
async def docchat_error_handler(request: Request, exc: DocChatError) -> JSONResponse:
    """Render domain errors with their code and retryable flag."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include API router
app.include_router(api_router, prefix=settings.API_PREFIX)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("docchat.main:app", host="0.0.0.0", port=8000, reload=True)
