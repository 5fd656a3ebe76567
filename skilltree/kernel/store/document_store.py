"""
Document store - keyed JSON documents grouped into named collections.

The engine only issues the primitive operations declared on DocumentStore:
get / get_many / set / create / update by key, and equality queries with
ordering. SqlDocumentStore implements them on one SQLAlchemy table.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from skilltree.kernel.models.document import Document
from skilltree.logging_config import get_logger

logger = get_logger(__name__)

Changes = Union[Mapping[str, Any], Callable[[Dict[str, Any]], Mapping[str, Any]]]


class DocumentStoreError(Exception):
    """Base error raised by document stores."""


class DocumentExistsError(DocumentStoreError):
    """create() was called for a key that is already taken."""

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"{collection}/{key} already exists")


class DocumentMissingError(DocumentStoreError):
    """update() was called for a key that does not exist."""

    def __init__(self, collection: str, key: str):
        self.collection = collection
        self.key = key
        super().__init__(f"{collection}/{key} does not exist")


class DocumentStore(Protocol):
    """Persistence collaborator used by every engine component."""

    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        ...

    async def get_many(self, collection: str, keys: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        ...

    async def set(
        self, collection: str, key: str, data: Mapping[str, Any], merge: bool = False
    ) -> Dict[str, Any]:
        ...

    async def create(self, collection: str, key: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        ...

    async def update(self, collection: str, key: str, changes: Changes) -> Dict[str, Any]:
        ...

    async def query(
        self,
        collection: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...


def _with_id(key: str, data: Mapping[str, Any]) -> Dict[str, Any]:
    doc = dict(data)
    doc.setdefault("id", key)
    return doc


def _matches(doc: Mapping[str, Any], field: str, expected: Any) -> bool:
    value = doc.get(field)
    if isinstance(expected, (list, tuple, set, frozenset)):
        return value in expected
    return value == expected


def _sort_key(field: str) -> Callable[[Mapping[str, Any]], tuple]:
    def key(doc: Mapping[str, Any]) -> tuple:
        value = doc.get(field)
        return (value is None, value if value is not None else 0)
    return key


class SqlDocumentStore:
    """
    DocumentStore backed by the `documents` table.

    Every call runs in its own transaction. update() holds a row lock
    (SELECT ... FOR UPDATE, a no-op on SQLite) while it merges changes, so a
    read-modify-write on one document is atomic.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @staticmethod
    def _row_query(collection: str, key: str):
        return select(Document).where(Document.collection == collection, Document.key == key)

    async def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        async with self._session_maker() as session:
            result = await session.execute(self._row_query(collection, key))
            row = result.scalar_one_or_none()
            return _with_id(row.key, row.data) if row else None

    async def get_many(self, collection: str, keys: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return {}
        async with self._session_maker() as session:
            q = select(Document).where(Document.collection == collection, Document.key.in_(wanted))
            result = await session.execute(q)
            return {row.key: _with_id(row.key, row.data) for row in result.scalars().all()}

    async def set(
        self, collection: str, key: str, data: Mapping[str, Any], merge: bool = False
    ) -> Dict[str, Any]:
        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(self._row_query(collection, key).with_for_update())
                row = result.scalar_one_or_none()
                if row is None:
                    row = Document(collection=collection, key=key, data=dict(data))
                    session.add(row)
                elif merge:
                    row.data = {**row.data, **data}
                else:
                    row.data = dict(data)
                stored = _with_id(key, row.data)
        return stored

    async def create(self, collection: str, key: str, data: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            async with self._session_maker() as session:
                async with session.begin():
                    session.add(Document(collection=collection, key=key, data=dict(data)))
        except IntegrityError as exc:
            raise DocumentExistsError(collection, key) from exc
        return _with_id(key, data)

    async def update(self, collection: str, key: str, changes: Changes) -> Dict[str, Any]:
        async with self._session_maker() as session:
            async with session.begin():
                result = await session.execute(self._row_query(collection, key).with_for_update())
                row = result.scalar_one_or_none()
                if row is None:
                    raise DocumentMissingError(collection, key)
                current = dict(row.data)
                delta = changes(current) if callable(changes) else changes
                # Reassign so the JSON column is flagged dirty
                row.data = {**current, **delta}
                stored = _with_id(key, row.data)
        return stored

    async def query(
        self,
        collection: str,
        where: Optional[Mapping[str, Any]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Equality query over one collection.

        String filters (and lists of strings, as IN) are pushed into SQL;
        other value types are compared after decoding. Ordering and limit are
        applied to the decoded documents.
        """
        where = dict(where or {})
        q = select(Document).where(Document.collection == collection)
        residual: Dict[str, Any] = {}
        for field, expected in where.items():
            if isinstance(expected, str):
                q = q.where(Document.data[field].as_string() == expected)
            elif isinstance(expected, (list, tuple, set, frozenset)) and all(
                isinstance(v, str) for v in expected
            ):
                if not expected:
                    return []
                q = q.where(Document.data[field].as_string().in_(list(expected)))
            else:
                residual[field] = expected

        async with self._session_maker() as session:
            result = await session.execute(q)
            docs = [_with_id(row.key, row.data) for row in result.scalars().all()]

        if residual:
            docs = [d for d in docs if all(_matches(d, f, v) for f, v in residual.items())]
        if order_by:
            docs.sort(key=_sort_key(order_by), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs
