"""Device-key credentials.

Keys are opaque, high-entropy strings handed to a device exactly once.  Only
their SHA-256 digest is stored, one per slot per user; issuing a new key
overwrites the digest so the previous key stops resolving immediately.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from vitalsync.errors import InvalidCredential, Unauthenticated
from vitalsync.models import KeySlot, UserRef
from vitalsync.storage.repository import UserRepository

logger = structlog.get_logger(__name__)

ALL_SLOTS: tuple[KeySlot, ...] = (KeySlot.IOT, KeySlot.EMOTION)


def hash_key(key: str) -> str:
    """Deterministic one-way digest of a presented key (hex SHA-256)."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def generate_key(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


class CredentialResolver:
    """Map a presented device key to the user that owns it."""

    def __init__(self, session: AsyncSession) -> None:
        self._users = UserRepository(session)

    async def resolve(
        self,
        presented_key: str | None,
        slots: Sequence[KeySlot] = ALL_SLOTS,
    ) -> UserRef:
        if not presented_key:
            raise Unauthenticated("Missing device key.")

        user = await self._users.get_by_key_hash(hash_key(presented_key), slots)
        if user is None:
            logger.info("auth.invalid_credential", slots=[s.value for s in slots])
            raise InvalidCredential("Invalid device key.")
        return UserRef(id=user.id, external_id=user.external_id)


class KeyIssuer:
    """Issue (and rotate) device keys for a user identified by the identity provider."""

    def __init__(self, session: AsyncSession, nbytes: int = 32) -> None:
        self._users = UserRepository(session)
        self._nbytes = nbytes

    async def issue(self, external_id: str, slot: KeySlot) -> str:
        """Return a fresh plaintext key for *slot*.  It cannot be retrieved again."""
        user = await self._users.upsert(external_id)
        key = generate_key(self._nbytes)
        await self._users.set_key_hash(user, slot, hash_key(key))
        logger.info("auth.key_issued", external_id=external_id, slot=slot.value)
        return key
