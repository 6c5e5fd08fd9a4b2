"""Tests for the correlation engine: merge-vs-create and the field merge policy."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from tests.conftest import T0, make_reading
from vitalsync.errors import StorageError
from vitalsync.ingestion.engine import CorrelationEngine, merge_sources
from vitalsync.models import Emotion
from vitalsync.storage.repository import ReadingRepository


async def _rows(db, user):
    async with db() as session:
        return await ReadingRepository(session).get_latest(user.id, limit=200)


class TestMergeSources:
    def test_union_keeps_order(self):
        assert merge_sources("camera", "iot") == "camera,iot"

    def test_repeated_merge_is_idempotent(self):
        assert merge_sources("camera,iot", "iot") == "camera,iot"
        assert merge_sources("camera,iot", "camera") == "camera,iot"

    def test_missing_sides(self):
        assert merge_sources(None, "iot") == "iot"
        assert merge_sources("camera", None) == "camera"
        assert merge_sources("", "") == ""


class TestCreate:
    async def test_fresh_correlation_id_creates_row_verbatim(self, engine, db, user):
        rid = await engine.ingest(user, make_reading(heart_rate=88, spo2=97.5, correlation_id="c-1"))
        rows = await _rows(db, user)
        assert [r.id for r in rows] == [rid]
        assert rows[0].heart_rate == 88
        assert rows[0].spo2 == 97.5
        assert rows[0].correlation_id == "c-1"

    async def test_default_source_iot_for_vitals(self, engine, db, user):
        await engine.ingest(user, make_reading(heart_rate=70))
        assert (await _rows(db, user))[0].source == "iot"

    async def test_default_source_camera_for_emotion(self, engine, db, user):
        await engine.ingest(user, make_reading(emotion=Emotion.SAD))
        assert (await _rows(db, user))[0].source == "camera"

    async def test_empty_submission_creates_degenerate_row(self, engine, db, user):
        await engine.ingest(user, make_reading())
        rows = await _rows(db, user)
        assert len(rows) == 1
        assert rows[0].heart_rate is None and rows[0].emotion is None


class TestCorrelationId:
    async def test_same_correlation_id_converges(self, engine, db, user):
        first = await engine.ingest(user, make_reading(heart_rate=80, correlation_id="c-9", source="iot"))
        second = await engine.ingest(user, make_reading(heart_rate=80, correlation_id="c-9", source="iot"))
        assert first == second
        async with db() as session:
            assert await ReadingRepository(session).count_for_user(user.id, "c-9") == 1

    async def test_correlation_id_wins_over_time_window(self, engine, db, user):
        paired = await engine.ingest(user, make_reading(0, emotion=Emotion.HAPPY, correlation_id="c-1", source="camera"))
        await engine.ingest(user, make_reading(300, heart_rate=70, source="watch"))
        merged = await engine.ingest(user, make_reading(600, heart_rate=90, correlation_id="c-1", source="iot"))
        assert merged == paired

    async def test_correlation_id_is_scoped_to_user(self, engine, db, user, other_user):
        a = await engine.ingest(user, make_reading(heart_rate=80, correlation_id="shared"))
        b = await engine.ingest(other_user, make_reading(heart_rate=81, correlation_id="shared"))
        assert a != b


class TestTimeWindow:
    async def test_scenario_camera_then_iot(self, engine, db, user):
        await engine.ingest(user, make_reading(0, emotion=Emotion.STRESSED, source="camera"))
        await engine.ingest(user, make_reading(4, heart_rate=150, source="iot"))
        rows = await _rows(db, user)
        assert len(rows) == 1
        row = rows[0]
        assert row.emotion == "STRESSED"
        assert row.heart_rate == 150
        assert row.source == "camera,iot"
        assert row.timestamp == T0 + timedelta(seconds=4)

    async def test_timestamp_keeps_later_value(self, engine, db, user):
        await engine.ingest(user, make_reading(8, heart_rate=90, source="iot"))
        await engine.ingest(user, make_reading(2, emotion=Emotion.SAD, source="camera"))
        rows = await _rows(db, user)
        assert len(rows) == 1
        assert rows[0].timestamp == T0 + timedelta(seconds=8)

    async def test_same_source_does_not_merge(self, engine, db, user):
        await engine.ingest(user, make_reading(0, heart_rate=70, source="iot"))
        await engine.ingest(user, make_reading(3, heart_rate=72, source="iot"))
        assert len(await _rows(db, user)) == 2

    async def test_merged_row_does_not_take_a_repeat_producer(self, engine, db, user):
        first = await engine.ingest(user, make_reading(0, emotion=Emotion.HAPPY, source="camera"))
        await engine.ingest(user, make_reading(2, heart_rate=70, source="iot"))
        second = await engine.ingest(user, make_reading(4, emotion=Emotion.ANGRY, source="camera"))
        assert second != first
        rows = await _rows(db, user)
        assert [r.source for r in rows] == ["camera,iot", "camera"]
        assert rows[0].emotion == "HAPPY"

    async def test_alternating_stream_pairs_up_instead_of_collapsing(self, engine, db, user):
        for i in range(10):
            if i % 2:
                await engine.ingest(user, make_reading(i * 4, heart_rate=70 + i, source="iot"))
            else:
                await engine.ingest(user, make_reading(i * 4, emotion=Emotion.SAD, source="camera"))
        rows = await _rows(db, user)
        assert len(rows) == 5
        assert all(r.source == "camera,iot" for r in rows)

    async def test_tag_match_is_whole_element(self, engine, db, user):
        await engine.ingest(user, make_reading(0, heart_rate=70, source="iot-2"))
        await engine.ingest(user, make_reading(1, heart_rate=72, source="iot"))
        rows = await _rows(db, user)
        assert len(rows) == 1
        assert rows[0].source == "iot-2,iot"

    async def test_outside_window_creates_second_row(self, engine, db, user):
        await engine.ingest(user, make_reading(0, emotion=Emotion.HAPPY, source="camera"))
        await engine.ingest(user, make_reading(11, heart_rate=70, source="iot"))
        assert len(await _rows(db, user)) == 2

    async def test_other_users_rows_are_ignored(self, engine, db, user, other_user):
        await engine.ingest(other_user, make_reading(0, emotion=Emotion.HAPPY, source="camera"))
        await engine.ingest(user, make_reading(1, heart_rate=70, source="iot"))
        assert len(await _rows(db, user)) == 1
        assert len(await _rows(db, other_user)) == 1

    async def test_merges_into_most_recent_candidate(self, engine, db, user):
        older = await engine.ingest(user, make_reading(0, emotion=Emotion.HAPPY, source="camera"))
        newer = await engine.ingest(user, make_reading(15, emotion=Emotion.SAD, source="camera"))
        merged = await engine.ingest(user, make_reading(8, heart_rate=70, source="iot"))
        assert merged == newer != older

    async def test_custom_window(self, db, hub, user):
        narrow = CorrelationEngine(hub, db, merge_window=timedelta(seconds=2))
        await narrow.ingest(user, make_reading(0, emotion=Emotion.HAPPY, source="camera"))
        await narrow.ingest(user, make_reading(4, heart_rate=70, source="iot"))
        assert len(await _rows(db, user)) == 2


class TestMergePolicy:
    async def test_absent_fields_do_not_clobber(self, engine, db, user):
        await engine.ingest(user, make_reading(0, heart_rate=70, spo2=98, source="iot"))
        await engine.ingest(user, make_reading(1, emotion=Emotion.NEUTRAL, confidence=0.6, source="camera"))
        row = (await _rows(db, user))[0]
        assert (row.heart_rate, row.spo2, row.emotion, row.confidence) == (70, 98.0, "NEUTRAL", 0.6)

    async def test_present_fields_overwrite(self, engine, db, user):
        await engine.ingest(user, make_reading(0, heart_rate=70, correlation_id="c", source="iot"))
        await engine.ingest(user, make_reading(0, heart_rate=95, correlation_id="c", source="iot"))
        assert (await _rows(db, user))[0].heart_rate == 95

    async def test_identity_fields_first_writer_wins(self, engine, db, user):
        await engine.ingest(user, make_reading(0, heart_rate=70, device_id="watch-1", correlation_id="c-1", source="iot"))
        await engine.ingest(user, make_reading(1, emotion=Emotion.HAPPY, device_id="cam-1", correlation_id="c-1", source="camera"))
        rows = await _rows(db, user)
        assert len(rows) == 1
        assert rows[0].device_id == "watch-1"
        assert rows[0].correlation_id == "c-1"

    async def test_identity_fields_backfill_when_absent(self, engine, db, user):
        await engine.ingest(user, make_reading(0, heart_rate=70, source="iot"))
        await engine.ingest(user, make_reading(1, emotion=Emotion.SAD, device_id="cam-1", source="camera"))
        row = (await _rows(db, user))[0]
        assert row.device_id == "cam-1"

    async def test_source_tags_do_not_repeat(self, engine, db, user):
        await engine.ingest(user, make_reading(0, emotion=Emotion.SAD, correlation_id="c", source="camera"))
        for _ in range(3):
            await engine.ingest(user, make_reading(1, heart_rate=70, correlation_id="c", source="iot"))
        assert (await _rows(db, user))[0].source == "camera,iot"


class TestConcurrency:
    async def test_concurrent_pair_merges_when_serialised(self, engine, db, user):
        await asyncio.gather(
            engine.ingest(user, make_reading(0, emotion=Emotion.HAPPY, source="camera")),
            engine.ingest(user, make_reading(1, heart_rate=70, source="iot")),
        )
        rows = await _rows(db, user)
        assert len(rows) == 1
        assert rows[0].source in ("camera,iot", "iot,camera")


class TestPublishing:
    async def test_event_carries_external_identity(self, engine, hub, user):
        async with hub.subscribe() as stream:
            rid = await engine.ingest(user, make_reading(heart_rate=77, emotion=Emotion.HAPPY))
            event = await asyncio.wait_for(stream.get(), timeout=1)
        assert event["type"] == "emotion"
        assert event["userId"] == "user_alice"
        assert event["row"]["id"] == rid
        assert event["row"]["heartRate"] == 77
        assert event["row"]["emotion"] == "HAPPY"

    async def test_merge_event_has_all_known_fields(self, engine, hub, user):
        await engine.ingest(user, make_reading(0, emotion=Emotion.STRESSED, source="camera"))
        async with hub.subscribe() as stream:
            await engine.ingest(user, make_reading(4, heart_rate=150, source="iot"))
            event = await asyncio.wait_for(stream.get(), timeout=1)
        assert event["row"]["emotion"] == "STRESSED"
        assert event["row"]["heartRate"] == 150

    async def test_failing_subscriber_does_not_fail_ingest(self, engine, hub, db, user):
        class Broken:
            name = "broken"
            user_filter = None

            async def send(self, payload):
                raise ConnectionResetError

            async def close(self):
                pass

        hub.add(Broken())
        await engine.ingest(user, make_reading(heart_rate=70))
        await hub.drain()
        assert hub.subscriber_count == 0
        assert len(await _rows(db, user)) == 1


class TestStorageFailure:
    async def test_storage_errors_propagate(self, engine, user, monkeypatch):
        async def boom(*args, **kwargs):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr("sqlalchemy.ext.asyncio.AsyncSession.commit", boom)
        with pytest.raises(StorageError):
            await engine.ingest(user, make_reading(heart_rate=70))
