"""Data-access layer — thin async wrappers around SQLAlchemy queries.

Any :class:`~sqlalchemy.exc.SQLAlchemyError` raised underneath is re-raised
as :class:`~vitalsync.errors.StorageError` so callers only ever see the
domain error taxonomy.
"""

from __future__ import annotations

import functools
import uuid
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import structlog
from sqlalchemy import func, not_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from vitalsync.errors import StorageError
from vitalsync.models import SOURCE_SEPARATOR, KeySlot, PartialReading
from vitalsync.storage.database import ReadingRow, UserRow

logger = structlog.get_logger(__name__)

T = TypeVar("T")

_SLOT_COLUMNS = {
    KeySlot.IOT: UserRow.api_key_hash,
    KeySlot.EMOTION: UserRow.emotion_key_hash,
}


def _has_tag(tag: str):
    """Whether ``readings.source`` contains *tag* as one element of its tag set."""
    col = ReadingRow.source
    sep = SOURCE_SEPARATOR
    return or_(
        col == tag,
        col.startswith(tag + sep, autoescape=True),
        col.endswith(sep + tag, autoescape=True),
        col.contains(sep + tag + sep, autoescape=True),
    )


def _guarded(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Translate driver / ORM failures into :class:`StorageError`."""

    @functools.wraps(fn)
    async def wrapper(self: BaseRepository, *args: Any, **kwargs: Any) -> T:
        try:
            return await fn(self, *args, **kwargs)
        except SQLAlchemyError as exc:
            logger.error("storage.error", op=fn.__qualname__, error=type(exc).__name__)
            await self._session.rollback()
            raise StorageError() from exc

    return wrapper


class BaseRepository:
    """Shared base holding the session every query runs on."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session


class UserRepository(BaseRepository):
    """Users and their hashed device keys."""

    @_guarded
    async def get(self, user_id: int) -> UserRow | None:
        return await self._session.get(UserRow, user_id)

    @_guarded
    async def get_by_external_id(self, external_id: str) -> UserRow | None:
        stmt = select(UserRow).where(UserRow.external_id == external_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @_guarded
    async def get_by_key_hash(self, key_hash: str, slots: Sequence[KeySlot]) -> UserRow | None:
        """Find the user whose stored hash in any of *slots* equals *key_hash*."""
        stmt = select(UserRow).where(or_(*(_SLOT_COLUMNS[s] == key_hash for s in slots)))
        result = await self._session.execute(stmt)
        return result.scalars().first()

    @_guarded
    async def upsert(self, external_id: str) -> UserRow:
        """Return the user for *external_id*, creating it on first contact."""
        stmt = select(UserRow).where(UserRow.external_id == external_id)
        existing = (await self._session.execute(stmt)).scalar_one_or_none()
        if existing is not None:
            return existing
        row = UserRow(external_id=external_id)
        self._session.add(row)
        await self._session.commit()
        logger.info("user.created", external_id=external_id)
        return row

    @_guarded
    async def set_key_hash(self, user: UserRow, slot: KeySlot, key_hash: str) -> None:
        """Overwrite the hash for *slot*; the previous key stops resolving immediately."""
        if slot is KeySlot.IOT:
            user.api_key_hash = key_hash
        else:
            user.emotion_key_hash = key_hash
        await self._session.commit()


class ReadingRepository(BaseRepository):
    """Time-indexed fused readings, queryable by user, correlation id, and window."""

    # ── Write ─────────────────────────────────────────────────

    @_guarded
    async def create(self, user_id: int, reading: PartialReading, source: str) -> ReadingRow:
        row = ReadingRow(
            id=str(uuid.uuid4()),
            user_id=user_id,
            timestamp=reading.timestamp,
            heart_rate=reading.heart_rate,
            spo2=reading.spo2,
            emotion=reading.emotion.value if reading.emotion else None,
            confidence=reading.confidence,
            stress_score=reading.stress_score,
            source=source,
            device_id=reading.device_id,
            correlation_id=reading.correlation_id,
        )
        self._session.add(row)
        await self._session.commit()
        return row

    @_guarded
    async def update(self, row: ReadingRow, changes: dict[str, Any]) -> ReadingRow:
        """Apply all *changes* to *row* in one commit."""
        for name, value in changes.items():
            setattr(row, name, value)
        await self._session.commit()
        return row

    # ── Read ──────────────────────────────────────────────────

    @_guarded
    async def get(self, reading_id: str) -> ReadingRow | None:
        return await self._session.get(ReadingRow, reading_id)

    @_guarded
    async def find_by_correlation_id(self, user_id: int, correlation_id: str) -> ReadingRow | None:
        stmt = (
            select(ReadingRow)
            .where(
                ReadingRow.user_id == user_id,
                ReadingRow.correlation_id == correlation_id,
            )
            .order_by(ReadingRow.timestamp.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @_guarded
    async def find_in_window(
        self,
        user_id: int,
        around: datetime,
        window: timedelta,
        exclude_tags: Sequence[str] = (),
    ) -> ReadingRow | None:
        """Most recent reading within ``around ± window`` carrying none of *exclude_tags*.

        ``source`` holds a comma-joined tag set, so a tag is matched as a whole
        element of that set rather than against the full string.
        """
        stmt = select(ReadingRow).where(
            ReadingRow.user_id == user_id,
            ReadingRow.timestamp >= around - window,
            ReadingRow.timestamp <= around + window,
        )
        for tag in exclude_tags:
            stmt = stmt.where(not_(_has_tag(tag)))
        stmt = stmt.order_by(ReadingRow.timestamp.desc()).limit(1)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    @_guarded
    async def get_latest(
        self,
        user_id: int,
        limit: int = 50,
        emotion_only: bool = False,
    ) -> list[ReadingRow]:
        """Return up to *limit* most recent readings, oldest first."""
        stmt = select(ReadingRow).where(ReadingRow.user_id == user_id)
        if emotion_only:
            stmt = stmt.where(ReadingRow.emotion.is_not(None))
        stmt = stmt.order_by(ReadingRow.timestamp.desc()).limit(limit)
        result = await self._session.execute(stmt)
        rows = list(result.scalars().all())
        rows.reverse()
        return rows

    @_guarded
    async def count_for_user(self, user_id: int, correlation_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(ReadingRow).where(ReadingRow.user_id == user_id)
        if correlation_id is not None:
            stmt = stmt.where(ReadingRow.correlation_id == correlation_id)
        result = await self._session.execute(stmt)
        return result.scalar() or 0
