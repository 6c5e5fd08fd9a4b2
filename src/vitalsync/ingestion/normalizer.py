"""Map vendor emotion labels (DeepFace, face-api, ...) to canonical categories."""

from __future__ import annotations

from vitalsync.models import Emotion

_LABELS: dict[str, Emotion] = {
    "happy": Emotion.HAPPY,
    "neutral": Emotion.NEUTRAL,
    "sad": Emotion.SAD,
    "angry": Emotion.ANGRY,
    # Labels with no category of their own count as stress.
    "fear": Emotion.STRESSED,
    "fearful": Emotion.STRESSED,
    "disgust": Emotion.STRESSED,
    "disgusted": Emotion.STRESSED,
    "surprise": Emotion.STRESSED,
    "surprised": Emotion.STRESSED,
    "stress": Emotion.STRESSED,
    "stressed": Emotion.STRESSED,
}


def normalize(label: object, *, force_default: bool = False) -> Emotion | None:
    """Return the canonical category for *label*.

    Matching is case-insensitive and ignores surrounding whitespace.  Unknown
    or missing labels yield ``None`` unless *force_default* is set, in which
    case they yield :attr:`Emotion.STRESSED`.  Never raises.
    """
    if isinstance(label, str):
        found = _LABELS.get(label.strip().lower())
        if found is not None:
            return found
    return Emotion.STRESSED if force_default else None
