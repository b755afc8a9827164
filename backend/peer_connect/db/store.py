"""Record store adapter - the only path to persisted state.

Every method opens its own short-lived session and commits before returning, so
each mutation is a single atomic statement against the database. Nothing here
keeps state between calls.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy import delete, func, inspect, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from peer_connect.db.database import Base, async_session

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def _primary_key(model: type[Base]):
    return inspect(model).primary_key[0]


def _creation_order(model: type[Base]) -> tuple:
    """Deterministic ordering: creation time ascending, primary key tiebreak."""
    pk = _primary_key(model)
    created = getattr(model, "created_at", None)
    return (created, pk) if created is not None else (pk,)


class RecordStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[AsyncSession]:
        """A session whose work commits together, or rolls back on error."""
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def get(self, model: type[ModelT], ident: Any) -> ModelT | None:
        async with self._session_factory() as session:
            return await session.get(model, ident)

    async def put(self, obj: ModelT) -> ModelT:
        """Insert or overwrite a record by primary key."""
        async with self.unit_of_work() as session:
            merged = await session.merge(obj)
            await session.flush()
        return merged

    async def find_first(self, model: type[ModelT], *criteria) -> ModelT | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(model).where(*criteria).order_by(*_creation_order(model)).limit(1)
            )
            return result.scalar_one_or_none()

    async def find_all(self, model: type[ModelT], *criteria, limit: int | None = None) -> list[ModelT]:
        stmt = select(model).where(*criteria).order_by(*_creation_order(model))
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def count(self, model: type[Base], *criteria) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(model).where(*criteria)
            )
            return result.scalar_one()

    async def delete(self, model: type[Base], *criteria) -> int:
        async with self.unit_of_work() as session:
            result = await session.execute(delete(model).where(*criteria))
        return result.rowcount

    async def compare_and_set(
        self,
        model: type[Base],
        ident: Any,
        field: str,
        expected: Any,
        new: Any,
        *,
        guards: tuple = (),
        **values: Any,
    ) -> bool:
        """Set ``field`` to ``new`` only if it currently equals ``expected``.

        ``guards`` adds extra WHERE conditions, ``values`` extra columns to write
        in the same statement. Returns True for exactly one of any number of
        concurrent callers racing on the same expected value.
        """
        stmt = (
            update(model)
            .where(_primary_key(model) == ident, getattr(model, field) == expected, *guards)
            .values({field: new, **values})
            .execution_options(synchronize_session=False)
        )
        async with self.unit_of_work() as session:
            result = await session.execute(stmt)
        won = result.rowcount == 1
        if not won:
            logger.debug(
                "CAS lost on %s %s: %s != %r", model.__tablename__, ident, field, expected
            )
        return won

    async def insert_if_absent(self, obj: ModelT, *existing_criteria) -> tuple[ModelT, bool]:
        """Insert ``obj`` unless a unique constraint says it already exists.

        Returns ``(record, created)``; on a duplicate the stored record matching
        ``existing_criteria`` is returned untouched.
        """
        model = type(obj)
        try:
            async with self.unit_of_work() as session:
                session.add(obj)
        except IntegrityError:
            existing = await self.find_first(model, *existing_criteria)
            if existing is None:
                raise
            return existing, False
        return obj, True


def get_store() -> RecordStore:
    """FastAPI dependency that returns a store bound to the app database."""
    return RecordStore(async_session)
