"""Field-level validation: timestamps, physiological bounds, emotion labels."""

from __future__ import annotations

import math
from datetime import datetime, timezone

import structlog

from vitalsync.errors import OutOfRange
from vitalsync.ingestion.normalizer import normalize
from vitalsync.models import STRESS_SCORES, IngestRequest, PartialReading, ValidationPolicy

logger = structlog.get_logger(__name__)

# Epoch values below this are read as seconds, anything larger as milliseconds.
_EPOCH_MS_THRESHOLD = 1e11


def utcnow() -> datetime:
    """Naive UTC ``now``; all stored timestamps are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _from_epoch(value: float) -> datetime | None:
    if not math.isfinite(value):
        return None
    seconds = value / 1000.0 if abs(value) >= _EPOCH_MS_THRESHOLD else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
    except (OverflowError, OSError, ValueError):
        return None


def parse_timestamp(value: float | str | None) -> datetime | None:
    """Parse an epoch number (s or ms) or an ISO-8601 / numeric string.

    Returns ``None`` when *value* is absent or unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _from_epoch(float(value))

    text = value.strip()
    if not text:
        return None
    try:
        return _from_epoch(float(text))
    except ValueError:
        pass
    try:
        return _to_naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        return None


def heart_rate_in_range(value: float) -> bool:
    return 0 < value < 250


def spo2_in_range(value: float) -> bool:
    return 50 < value <= 100


def _check(field: str, value: float | None, ok: bool, policy: ValidationPolicy) -> bool:
    """Return whether *value* should be kept; raise under the ``reject`` policy."""
    if value is None:
        return False
    if ok:
        return True
    if policy is ValidationPolicy.REJECT:
        raise OutOfRange(field, value)
    logger.warning("ingest.field_dropped", field=field, value=value)
    return False


def prepare(
    raw: IngestRequest,
    *,
    policy: ValidationPolicy = ValidationPolicy.DROP_FIELD,
    force_emotion_default: bool = False,
    default_source: str | None = None,
    now: datetime | None = None,
) -> PartialReading:
    """Turn a raw request body into a :class:`PartialReading`.

    * timestamp — explicit value when parseable, otherwise *now*
    * heart rate — rounded to an integer, then bounded to (0, 250)
    * SpO₂ — bounded to (50, 100]
    * emotion — normalised; ``stress_score`` is attached only on the
      forced-default path used by the single-source camera pipeline
    """
    timestamp = parse_timestamp(raw.timestamp) or now or utcnow()

    heart_rate = None
    hr = raw.heart_rate
    # Bounds apply to the stored (rounded) value.
    rounded = int(round(hr)) if hr is not None and math.isfinite(hr) else None
    if _check("heartRate", hr, rounded is not None and heart_rate_in_range(rounded), policy):
        heart_rate = rounded

    spo2 = None
    sp = raw.spo2
    if _check("spO2", sp, sp is not None and math.isfinite(sp) and spo2_in_range(sp), policy):
        spo2 = float(sp)

    emotion = None
    if raw.emotion is not None or force_emotion_default:
        emotion = normalize(raw.emotion, force_default=force_emotion_default)
        if emotion is None:
            logger.info("ingest.emotion_unrecognised")

    return PartialReading(
        timestamp=timestamp,
        heart_rate=heart_rate,
        spo2=spo2,
        emotion=emotion,
        confidence=raw.confidence,
        stress_score=STRESS_SCORES[emotion] if force_emotion_default and emotion else None,
        device_id=raw.device_id,
        correlation_id=raw.correlation_id,
        source=(raw.source or "").strip() or default_source,
    )
