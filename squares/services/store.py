"""Key-value store operations against the multi-entity items table.

Each operation runs in its own session and commits on its own, so atomicity is
per item: there is no transaction spanning two items. Conditional writes use the
row version as an optimistic lock.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from squares.errors import ConditionFailedError
from squares.models.base import async_session_factory
from squares.models.item import INDEXES, KEY_ATTRIBUTES, Item

logger = logging.getLogger("squares.store")


@dataclass
class Record:
    """An item to write: primary key, document, and any index attributes."""

    pk: str
    sk: str
    data: dict[str, Any]
    entity_id: Optional[str] = None
    gsi1pk: Optional[str] = None
    gsi1sk: Optional[str] = None
    gsi2pk: Optional[str] = None
    gsi2sk: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    display_name: Optional[str] = None

    def key_attributes(self) -> dict[str, Optional[str]]:
        return {name: getattr(self, name) for name in KEY_ATTRIBUTES}


@dataclass
class Page:
    items: list[dict[str, Any]] = field(default_factory=list)
    last_key: Optional[dict[str, str]] = None  # None when nothing follows


def _check_expected(pk: str, sk: str, current: dict[str, Any], expect: Optional[dict[str, Any]]) -> None:
    """Expected value None means the attribute must be absent."""
    for attr, expected in (expect or {}).items():
        actual = current.get(attr)
        if actual != expected:
            raise ConditionFailedError(f"{pk}/{sk}: {attr} is {actual!r}, expected {expected!r}")


def _beyond(columns: Sequence, values: Sequence[str], forward: bool):
    """Rows strictly after `values` in (col1, col2, ...) order."""
    clauses = []
    for i, col in enumerate(columns):
        equal = [columns[j] == values[j] for j in range(i)]
        step = col > values[i] if forward else col < values[i]
        clauses.append(and_(*equal, step))
    return or_(*clauses)


class ItemStore:
    """CRUD primitives keyed by (pk, sk), with secondary index queries."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or async_session_factory

    async def get(self, pk: str, sk: str) -> Optional[dict[str, Any]]:
        async with self._session_factory() as session:
            item = await session.get(Item, (pk, sk))
            return dict(item.data) if item else None

    async def put(self, record: Record, *, if_not_exists: bool = False) -> None:
        """Write a whole item. With if_not_exists the write fails if (pk, sk) is taken."""
        async with self._session_factory() as session:
            existing = None if if_not_exists else await session.get(Item, (record.pk, record.sk))
            if existing is not None:
                existing.data = dict(record.data)
                for name, value in record.key_attributes().items():
                    setattr(existing, name, value)
                existing.version += 1
            else:
                session.add(Item(pk=record.pk, sk=record.sk, data=dict(record.data), **record.key_attributes()))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConditionFailedError(f"{record.pk}/{record.sk} already exists") from e

    async def batch_put(self, records: Sequence[Record], batch_size: int = 25) -> int:
        """Insert records in batches; each batch commits on its own. Returns items written."""
        written = 0
        for start in range(0, len(records), batch_size):
            batch = records[start:start + batch_size]
            async with self._session_factory() as session:
                session.add_all(
                    Item(pk=r.pk, sk=r.sk, data=dict(r.data), **r.key_attributes()) for r in batch
                )
                await session.commit()
            written += len(batch)
            logger.debug("Batch wrote %d items (%d/%d)", len(batch), written, len(records))
        return written

    async def update(
        self,
        pk: str,
        sk: str,
        changes: dict[str, Any],
        *,
        expect: Optional[dict[str, Any]] = None,
        remove: Iterable[str] = (),
        keys: Optional[dict[str, Optional[str]]] = None,
    ) -> dict[str, Any]:
        """Merge `changes` into the document, drop `remove` attributes, and set index `keys`.

        Raises ConditionFailedError if the item is missing, an `expect` attribute differs,
        or another writer got in between the read and the write. Returns the new document.
        """
        async with self._session_factory() as session:
            item = await session.get(Item, (pk, sk))
            if item is None:
                raise ConditionFailedError(f"{pk}/{sk} does not exist")
            current = dict(item.data)
            _check_expected(pk, sk, current, expect)
            new_data = {**current, **changes}
            for attr in remove:
                new_data.pop(attr, None)
            values: dict[str, Any] = {"data": new_data, "version": item.version + 1}
            for name, value in (keys or {}).items():
                if name not in KEY_ATTRIBUTES:
                    raise ValueError(f"Unknown key attribute: {name}")
                values[name] = value
            result = await session.execute(
                update(Item)
                .where(Item.pk == pk, Item.sk == sk, Item.version == item.version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                raise ConditionFailedError(f"{pk}/{sk} was modified concurrently")
            await session.commit()
            return new_data

    async def delete(self, pk: str, sk: str, *, expect: Optional[dict[str, Any]] = None) -> bool:
        """Delete one item. Returns False if it did not exist."""
        async with self._session_factory() as session:
            item = await session.get(Item, (pk, sk))
            if item is None:
                return False
            _check_expected(pk, sk, dict(item.data), expect)
            result = await session.execute(
                delete(Item)
                .where(Item.pk == pk, Item.sk == sk, Item.version == item.version)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await session.rollback()
                raise ConditionFailedError(f"{pk}/{sk} was modified concurrently")
            await session.commit()
            return True

    async def delete_partition(self, pk: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(delete(Item).where(Item.pk == pk))
            await session.commit()
            return result.rowcount or 0

    async def query(self, pk: str, sk_prefix: Optional[str] = None) -> list[dict[str, Any]]:
        """All documents in a partition, ordered by sort key."""
        async with self._session_factory() as session:
            stmt = select(Item).where(Item.pk == pk)
            if sk_prefix:
                stmt = stmt.where(Item.sk.startswith(sk_prefix, autoescape=True))
            result = await session.execute(stmt.order_by(Item.sk))
            return [dict(item.data) for item in result.scalars().all()]

    async def count(self, pk: str, sk_prefix: Optional[str] = None) -> int:
        async with self._session_factory() as session:
            stmt = select(func.count()).select_from(Item).where(Item.pk == pk)
            if sk_prefix:
                stmt = stmt.where(Item.sk.startswith(sk_prefix, autoescape=True))
            return (await session.execute(stmt)).scalar_one()

    async def query_index(
        self,
        index: str,
        value: str,
        *,
        sk_prefix: Optional[str] = None,
        limit: Optional[int] = None,
        start_key: Optional[dict[str, str]] = None,
        forward: bool = True,
    ) -> Page:
        """Query a secondary index by partition value.

        Results are ordered by (index sort key, pk, sk). `start_key` is a previous
        page's last_key; the page resumes strictly after it.
        """
        if index not in INDEXES:
            raise ValueError(f"Unknown index: {index}")
        pk_name, sk_name = INDEXES[index]
        order_names = ([sk_name] if sk_name else []) + ["pk", "sk"]
        order_cols = [getattr(Item, name) for name in order_names]

        stmt = select(Item).where(getattr(Item, pk_name) == value)
        if sk_prefix and sk_name:
            stmt = stmt.where(getattr(Item, sk_name).startswith(sk_prefix, autoescape=True))
        if start_key is not None:
            if start_key.get(pk_name) != value or any(
                not isinstance(start_key.get(name), str) for name in order_names
            ):
                raise ValueError("Start key does not belong to this query")
            stmt = stmt.where(_beyond(order_cols, [start_key[name] for name in order_names], forward))
        stmt = stmt.order_by(*(c.asc() if forward else c.desc() for c in order_cols))
        if limit is not None:
            stmt = stmt.limit(limit + 1)

        async with self._session_factory() as session:
            rows = list((await session.execute(stmt)).scalars().all())

        last_key = None
        if limit is not None and len(rows) > limit:
            rows = rows[:limit]
            tail = rows[-1]
            last_key = {name: getattr(tail, name) for name in [pk_name, *order_names]}
        return Page(items=[dict(r.data) for r in rows], last_key=last_key)
