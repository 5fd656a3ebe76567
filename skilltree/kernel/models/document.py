"""
Generic document row backing every engine collection.

Each row is one JSON document addressed by (collection, key); the pair is
the primary key, so a second insert of the same key fails at the database.
"""

from typing import Any, Dict

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from skilltree.kernel.models.base import Base, TimestampMixin


class Document(Base, TimestampMixin):
    """A JSON document stored under a collection name and key."""

    __tablename__ = "documents"

    collection: Mapped[str] = mapped_column(String(64), primary_key=True)
    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    data: Mapped[Dict[str, Any]] = mapped_column(nullable=False, default=dict)
