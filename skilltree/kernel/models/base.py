"""
Declarative base shared by the store's tables.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    # Document bodies are plain JSON on every backend (JSONB is not required)
    type_annotation_map = {
        Dict[str, Any]: JSON,
    }


class TimestampMixin:
    """Row-level created_at/updated_at, maintained by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
