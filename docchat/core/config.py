from typing import Any, List
import os

from pydantic import PostgresDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    API_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "docchat"
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"  # Frontend URL

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "docchat"
    POSTGRES_PASSWORD: str = "docchat"
    POSTGRES_DB: str = "docchat"
    SQLALCHEMY_DATABASE_URI: PostgresDsn | str | None = None
    SYNC_SQLALCHEMY_DATABASE_URI: PostgresDsn | str | None = None

    @field_validator("SQLALCHEMY_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: str | None, info: Any) -> Any:
        if isinstance(v, str):
            return v
        return PostgresDsn.build(
            scheme="postgresql+asyncpg",
            username=info.data.get("POSTGRES_USER"),
            password=info.data.get("POSTGRES_PASSWORD"),
            host=info.data.get("POSTGRES_HOST"),
            port=info.data.get("POSTGRES_PORT"),
            path=f"{info.data.get('POSTGRES_DB') or ''}",
        )

    @field_validator("SYNC_SQLALCHEMY_DATABASE_URI", mode="before")
    def assemble_sync_db_connection(cls, v: str | None, info: Any) -> Any:
        if isinstance(v, str):
            return v
        return PostgresDsn.build(
            scheme="postgresql+psycopg2",  # Alembic runs on the synchronous driver
            username=info.data.get("POSTGRES_USER"),
            password=info.data.get("POSTGRES_PASSWORD"),
            host=info.data.get("POSTGRES_HOST"),
            port=info.data.get("POSTGRES_PORT"),
            path=f"{info.data.get('POSTGRES_DB') or ''}",
        )

    # Redis
    REDIS_HOST: str = "localhost"
    REDIS_PORT: str = "6379"
    REDIS_PASSWORD: str = ""
    REDIS_URL: str | None = None

    @field_validator("REDIS_URL", mode="before")
    def assemble_redis_connection(cls, v: str | None, info: Any) -> Any:
        if isinstance(v, str):
            return v
        password = f":{info.data.get('REDIS_PASSWORD')}@" if info.data.get("REDIS_PASSWORD") else ""
        return f"redis://{password}{info.data.get('REDIS_HOST')}:{info.data.get('REDIS_PORT')}/0"

    # Auth
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHMS: List[str] = ["HS256"]
    JWT_AUDIENCE: str | None = None

    # Storage
    DATA_DIR: str = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))), "data")

    # Upload validation
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024
    ALLOWED_MIME_TYPES: List[str] = [
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/tiff",
    ]

    # Processing holds
    MAX_ACTIVE_HOLDS_PER_USER: int = 3

    # OCR
    OCR_PROVIDER: str = "mistral"  # mistral | pdfminer
    MISTRAL_API_KEY: str | None = None
    MISTRAL_API_URL: str = "https://api.mistral.ai"
    OCR_MODEL: str = "mistral-ocr-latest"
    OCR_TIMEOUT_SECONDS: float = 120.0
    OCR_MAX_ATTEMPTS: int = 3
    OCR_BACKOFF_SECONDS: float = 2.0
    OCR_ANNOTATION_PAGES: int = 8

    # Chunking
    CHUNK_TARGET_WORDS: int = 400
    CHUNK_OVERLAP_WORDS: int = 50
    TOKENIZER_MODEL: str = "gpt-4o-mini"

    # OpenAI
    OPENAI_API_KEY: str | None = None
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIM: int = 1536
    EMBEDDING_INSERT_BATCH: int = 100
    CHAT_MODEL: str = "gpt-4o-mini"
    CHAT_MAX_TOKENS: int = 2000
    OPENAI_TEMPERATURE: float = 0.2
    CHAT_HISTORY_LIMIT: int = 10

    # Retrieval
    RETRIEVAL_MATCH_THRESHOLD: float = 0.15
    RETRIEVAL_MATCH_COUNT: int = 15
    HYBRID_VECTOR_WEIGHT: float = 0.7
    HYBRID_TEXT_WEIGHT: float = 0.3
    KEYWORD_MAX_TERMS: int = 5
    KEYWORD_FALLBACK_LIMIT: int = 10
    CATEGORY_FALLBACK_LIMIT: int = 10
    KEYWORD_FALLBACK_SIMILARITY: float = 0.3
    CONTEXT_MAX_BLOCKS: int = 12

    # Rate limiting
    RATE_LIMIT_CHAT_BUCKET: str = "chat_rag"
    RATE_LIMIT_CHAT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_CHAT_LIMIT: int = 30

    # Test Database - SQLite in-memory for tests
    TEST_DATABASE_URL: str = "sqlite+aiosqlite:///:memory:"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="allow",  # Allow extra fields from environment variables
    )


settings = Settings()
