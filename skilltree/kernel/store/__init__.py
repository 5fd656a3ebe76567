"""
Document store collaborator.
"""

from skilltree.kernel.store.document_store import (
    DocumentExistsError,
    DocumentMissingError,
    DocumentStore,
    DocumentStoreError,
    SqlDocumentStore,
)

__all__ = [
    "DocumentExistsError",
    "DocumentMissingError",
    "DocumentStore",
    "DocumentStoreError",
    "SqlDocumentStore",
]
