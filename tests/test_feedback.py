# tests/test_feedback.py
import pytest

from cefr_speech.schemas import (
    IntonationResult,
    PhonemeClassResult,
    RhythmResult,
    SegmentalResult,
    StressResult,
    SuprasegmentalResult,
)
from cefr_speech.services.feedback import FeedbackSynthesizer


def _results(vowels=0.75, consonants=0.75, stress=0.75, rhythm=0.75, intonation=0.75):
    segmental = SegmentalResult(
        vowels=PhonemeClassResult(count=3, accuracy=vowels),
        consonants=PhonemeClassResult(count=4, accuracy=consonants),
        overall_percent=75.0,
    )
    supra = SuprasegmentalResult(
        stress=StressResult(accuracy=stress),
        rhythm=RhythmResult(accuracy=rhythm, flow=rhythm),
        intonation=IntonationResult(accuracy=intonation, expressiveness=0.8),
        overall_percent=75.0,
    )
    return segmental, supra


def test_middle_band_gives_no_strengths_or_improvements():
    bundle = FeedbackSynthesizer().synthesize(*_results(), level="A1")
    assert bundle.strengths == []
    assert bundle.improvements == []
    assert bundle.specific_tips == []
    assert len(bundle.level_appropriate) == 2


def test_strengths_above_threshold():
    bundle = FeedbackSynthesizer().synthesize(*_results(vowels=0.9, consonants=0.85, stress=0.95), level="B1")
    assert "Excellent vowel pronunciation" in bundle.strengths
    assert "Strong consonant articulation" in bundle.strengths
    assert "Good word stress patterns" in bundle.strengths
    assert bundle.improvements == []


def test_improvements_come_with_tips():
    bundle = FeedbackSynthesizer().synthesize(*_results(vowels=0.5, rhythm=0.6), level="C1")
    assert bundle.improvements == ["Focus on vowel clarity and length", "Improve speech rhythm and timing"]
    assert len(bundle.specific_tips) == 2
    assert "Practice with a metronome or rhythm exercises" in bundle.specific_tips


@pytest.mark.parametrize(
    "level, first_tip",
    [
        ("A1", "Focus on clear articulation of individual sounds"),
        ("A2", "Focus on clear articulation of individual sounds"),
        ("B2", "Work on word stress patterns and connected speech"),
        ("C2", "Focus on subtle pronunciation features and natural rhythm"),
    ],
)
def test_level_band_tips(level, first_tip):
    bundle = FeedbackSynthesizer().synthesize(*_results(), level=level)
    assert bundle.level_appropriate[0] == first_tip
    assert len(bundle.level_appropriate) == 2
