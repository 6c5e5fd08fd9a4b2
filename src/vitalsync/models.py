"""Shared Pydantic models used across the service."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# ── Enums ─────────────────────────────────────────────────────


class Emotion(str, Enum):
    """Canonical emotion categories the system reasons over."""

    HAPPY = "HAPPY"
    NEUTRAL = "NEUTRAL"
    SAD = "SAD"
    ANGRY = "ANGRY"
    STRESSED = "STRESSED"


class KeySlot(str, Enum):
    """Device-key slots held per user.  One live key per slot."""

    IOT = "iot"
    EMOTION = "emotion"


class ValidationPolicy(str, Enum):
    """What to do with a numeric field outside its physiological bounds."""

    DROP_FIELD = "drop_field"
    REJECT = "reject"


# Heuristic stress score attached by the single-source camera pipeline.
STRESS_SCORES: dict[Emotion, int] = {
    Emotion.HAPPY: 20,
    Emotion.NEUTRAL: 40,
    Emotion.SAD: 65,
    Emotion.ANGRY: 75,
    Emotion.STRESSED: 85,
}

# Producer tags are stored on a reading as one comma-joined, ordered set.
SOURCE_SEPARATOR = ","


def source_tags(source: str | None) -> list[str]:
    """Split a comma-joined source string into its distinct tags, in order."""
    tags: list[str] = []
    for tag in (source or "").split(SOURCE_SEPARATOR):
        tag = tag.strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


# ── Data transfer objects ─────────────────────────────────────


class UserRef(BaseModel):
    """Resolved identity of the user a reading belongs to."""

    model_config = ConfigDict(frozen=True)

    id: int
    external_id: str


class IngestRequest(BaseModel):
    """Raw ingestion body as sent by cameras, wearables, and simulators."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    heart_rate: float | None = Field(None, alias="heartRate")
    spo2: float | None = Field(None, alias="spO2")
    emotion: str | None = None
    confidence: float | None = None
    timestamp: float | str | None = None
    device_id: str | None = Field(None, alias="deviceId")
    correlation_id: str | None = Field(None, alias="correlationId")
    source: str | None = None


class PartialReading(BaseModel):
    """A validated, normalised submission ready for correlation.

    Every field is optional; ``timestamp`` is always resolved by the time a
    ``PartialReading`` reaches the engine.
    """

    timestamp: datetime
    heart_rate: int | None = None
    spo2: float | None = None
    emotion: Emotion | None = None
    confidence: float | None = None
    stress_score: int | None = None
    device_id: str | None = None
    correlation_id: str | None = None
    source: str | None = None

    @property
    def has_vitals(self) -> bool:
        return self.heart_rate is not None or self.spo2 is not None

    def field_updates(self) -> dict[str, Any]:
        """Value fields present on this submission, keyed by column name."""
        fields = ("heart_rate", "spo2", "emotion", "confidence", "stress_score")
        return {name: getattr(self, name) for name in fields if getattr(self, name) is not None}


class ReadingEvent(BaseModel):
    """Live-channel envelope published after a create or merge."""

    type: str = "emotion"
    user_id: str = Field(serialization_alias="userId")
    row: dict[str, Any]

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
