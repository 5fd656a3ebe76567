"""
Kernel Data Models

SQLAlchemy models backing the document store.
"""

from skilltree.kernel.models.base import Base, TimestampMixin
from skilltree.kernel.models.document import Document

__all__ = [
    "Base",
    "TimestampMixin",
    "Document",
]
