"""Tests for device-key issuance and resolution."""

from __future__ import annotations

import pytest

from vitalsync.auth.credentials import CredentialResolver, KeyIssuer, hash_key
from vitalsync.errors import InvalidCredential, Unauthenticated
from vitalsync.models import KeySlot
from vitalsync.storage.repository import UserRepository


async def _issue(db, external_id: str, slot: KeySlot) -> str:
    async with db() as session:
        return await KeyIssuer(session).issue(external_id, slot)


async def _resolve(db, key, slots=(KeySlot.IOT, KeySlot.EMOTION)):
    async with db() as session:
        return await CredentialResolver(session).resolve(key, slots)


def test_hash_is_deterministic_and_hex():
    assert hash_key("abc") == hash_key("abc")
    assert hash_key("abc") != hash_key("abd")
    assert len(hash_key("abc")) == 64


async def test_missing_key_is_unauthenticated(db):
    with pytest.raises(Unauthenticated):
        await _resolve(db, None)
    with pytest.raises(Unauthenticated):
        await _resolve(db, "")


async def test_unknown_key_is_invalid(db):
    with pytest.raises(InvalidCredential):
        await _resolve(db, "not-a-real-key")


async def test_issued_key_resolves_to_user(db):
    key = await _issue(db, "user_alice", KeySlot.IOT)
    ref = await _resolve(db, key)
    assert ref.external_id == "user_alice"


async def test_only_hash_is_stored(db):
    key = await _issue(db, "user_alice", KeySlot.EMOTION)
    async with db() as session:
        row = await UserRepository(session).get_by_external_id("user_alice")
    assert row.emotion_key_hash == hash_key(key)
    assert key not in (row.emotion_key_hash, row.api_key_hash)


async def test_rotation_invalidates_previous_key(db):
    old = await _issue(db, "user_alice", KeySlot.IOT)
    new = await _issue(db, "user_alice", KeySlot.IOT)
    assert old != new
    with pytest.raises(InvalidCredential):
        await _resolve(db, old)
    assert (await _resolve(db, new)).external_id == "user_alice"


async def test_slots_are_independent(db):
    iot = await _issue(db, "user_alice", KeySlot.IOT)
    emotion = await _issue(db, "user_alice", KeySlot.EMOTION)
    assert (await _resolve(db, iot, (KeySlot.IOT,))).external_id == "user_alice"
    assert (await _resolve(db, emotion, (KeySlot.EMOTION,))).external_id == "user_alice"
    with pytest.raises(InvalidCredential):
        await _resolve(db, iot, (KeySlot.EMOTION,))


async def test_issue_upserts_user_once(db):
    await _issue(db, "user_alice", KeySlot.IOT)
    await _issue(db, "user_alice", KeySlot.EMOTION)
    async with db() as session:
        first = await UserRepository(session).get_by_external_id("user_alice")
        again = await UserRepository(session).upsert("user_alice")
    assert first.id == again.id
