"""Tests for emotion label normalisation."""

import pytest

from vitalsync.ingestion.normalizer import normalize
from vitalsync.models import Emotion


class TestNormalize:
    @pytest.mark.parametrize("label", ["HAPPY", "happy", "Happy", "  happy "])
    def test_case_insensitive(self, label):
        assert normalize(label) == Emotion.HAPPY

    @pytest.mark.parametrize(
        "label,expected",
        [
            ("neutral", Emotion.NEUTRAL),
            ("sad", Emotion.SAD),
            ("angry", Emotion.ANGRY),
            ("fear", Emotion.STRESSED),
            ("disgust", Emotion.STRESSED),
            ("surprise", Emotion.STRESSED),
            ("stress", Emotion.STRESSED),
            ("Stressed", Emotion.STRESSED),
        ],
    )
    def test_vendor_labels(self, label, expected):
        assert normalize(label) == expected

    def test_unknown_is_no_opinion(self):
        assert normalize("bogus") is None

    def test_missing_is_no_opinion(self):
        assert normalize(None) is None
        assert normalize("") is None

    def test_non_string_does_not_crash(self):
        assert normalize(42) is None

    def test_forced_default(self):
        assert normalize("bogus", force_default=True) == Emotion.STRESSED
        assert normalize(None, force_default=True) == Emotion.STRESSED
        assert normalize("sad", force_default=True) == Emotion.SAD
