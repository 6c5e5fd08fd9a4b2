"""Correlation engine — decide merge-vs-create for each incoming reading.

For a new reading the engine looks for a row to merge into, in order:

1. a row of the same user carrying the same ``correlation_id``;
2. when no correlation id was supplied, the most recent row of the same
   user whose timestamp lies within ``merge_window`` of the incoming one
   and whose tag set does not already hold the incoming source.

If a row is found only the fields present on the incoming reading are
written; ``timestamp`` keeps the later of the two, ``source`` becomes the
ordered union of tags, and ``device_id`` / ``correlation_id`` are only
backfilled when absent.  Otherwise a new row is created.  Either way a
:class:`~vitalsync.models.ReadingEvent` goes out through the hub.
"""

from __future__ import annotations

from contextlib import nullcontext
from datetime import timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vitalsync.ingestion.locks import KeyedLock
from vitalsync.models import SOURCE_SEPARATOR, PartialReading, ReadingEvent, UserRef, source_tags
from vitalsync.storage.database import ReadingRow
from vitalsync.storage.repository import ReadingRepository
from vitalsync.streaming.hub import PublishHub

logger = structlog.get_logger(__name__)


def merge_sources(existing: str | None, incoming: str | None) -> str:
    """Union of two comma-joined tag lists, first-seen order, no repeats."""
    tags = source_tags(existing)
    tags += [t for t in source_tags(incoming) if t not in tags]
    return SOURCE_SEPARATOR.join(tags)


def default_source(reading: PartialReading) -> str:
    return "iot" if reading.has_vitals else "camera"


def merge_changes(row: ReadingRow, reading: PartialReading) -> dict[str, Any]:
    """Column updates that fold *reading* into *row*."""
    changes = reading.field_updates()
    if reading.emotion is not None:
        changes["emotion"] = reading.emotion.value
    changes["timestamp"] = max(row.timestamp, reading.timestamp)
    changes["source"] = merge_sources(row.source, reading.source)
    if reading.device_id and not row.device_id:
        changes["device_id"] = reading.device_id
    if reading.correlation_id and not row.correlation_id:
        changes["correlation_id"] = reading.correlation_id
    return changes


def event_for(user: UserRef, row: ReadingRow) -> ReadingEvent:
    return ReadingEvent(
        user_id=user.external_id,
        row={
            "id": row.id,
            "timestamp": row.timestamp.isoformat(),
            "heartRate": row.heart_rate,
            "spO2": row.spo2,
            "emotion": row.emotion,
            "stressScore": row.stress_score,
        },
    )


class CorrelationEngine:
    """Fuse partial readings from independent producers into one time series."""

    def __init__(
        self,
        hub: PublishHub,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        merge_window: timedelta = timedelta(seconds=10),
        serialize_per_user: bool = True,
    ) -> None:
        self._hub = hub
        self._session_factory = session_factory
        self.merge_window = merge_window
        self._locks = KeyedLock() if serialize_per_user else None

    async def ingest(self, user: UserRef, reading: PartialReading) -> str:
        """Persist *reading* for *user* and return the id of the row it landed in.

        Raises :class:`~vitalsync.errors.StorageError` when persistence fails.
        """
        guard = self._locks.hold(user.id) if self._locks is not None else nullcontext()
        async with guard:
            async with self._session_factory() as session:
                repo = ReadingRepository(session)
                target = await self.find_target(repo, user, reading)
                if target is None:
                    row = await repo.create(
                        user.id, reading, reading.source or default_source(reading)
                    )
                    logger.info("ingest.created", reading_id=row.id, source=row.source)
                else:
                    changes = merge_changes(target, reading)
                    row = await repo.update(target, changes)
                    logger.info(
                        "ingest.merged",
                        reading_id=row.id,
                        fields=sorted(changes),
                        source=row.source,
                    )
                event = event_for(user, row)

        self._hub.publish(event)
        return row.id

    async def find_target(
        self,
        repo: ReadingRepository,
        user: UserRef,
        reading: PartialReading,
    ) -> ReadingRow | None:
        if reading.correlation_id:
            return await repo.find_by_correlation_id(user.id, reading.correlation_id)
        return await repo.find_in_window(
            user.id,
            reading.timestamp,
            self.merge_window,
            exclude_tags=source_tags(reading.source),
        )
