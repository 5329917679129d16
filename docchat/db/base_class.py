"""
Base class for SQLAlchemy models.
"""
from typing import Any, Dict

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.declarative import declared_attr
from sqlalchemy.orm import DeclarativeBase

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """Generate table name from class name in snake_case."""
        name = cls.__name__
        if name.endswith("Model"):
            name = name[:-5]
        return "".join(
            "_" + c.lower() if c.isupper() else c
            for c in name
        ).lstrip("_")

    def to_dict(self) -> Dict[str, Any]:
        """Return the column values as a dict."""
        return {c.name: getattr(self, c.name) for c in self.__table__.columns}
