# tests/test_segmental_scorer.py
import math

import pytest

from cefr_speech.models.phonetic_segment import LocalFeatures, PhoneticSegment
from cefr_speech.services.segmental_scorer import (
    PhonemeClass,
    SegmentalScorer,
    phoneme_class,
    produced_phoneme,
    score_phoneme,
)


def _local(**overrides):
    values = dict(energy=0.03, peak=0.2, pitch=150.0, f1=0.0, f2=0.0, f3=0.0, clarity=0.5, high_band_ratio=0.25)
    values.update(overrides)
    return LocalFeatures(**values)


ADVERSARIAL = [
    _local(energy=float("nan"), peak=float("inf"), clarity=float("-inf"), high_band_ratio=float("nan")),
    _local(energy=-5.0, peak=-1.0, clarity=-3.0, high_band_ratio=-2.0, f1=-100.0, f2=-100.0),
    _local(energy=1e9, peak=1e9, clarity=1e9, high_band_ratio=1e9, f1=1e9, f2=1e9),
    _local(energy=0.0, peak=0.0, clarity=0.0, high_band_ratio=0.0),
    None,
]


@pytest.mark.parametrize("local", ADVERSARIAL)
@pytest.mark.parametrize("phoneme", ["æ", "i:", "θ", "t", "tʃ", "m", "r", "w", "??"])
@pytest.mark.parametrize("level", ["A1", "B2", "C2"])
def test_accuracy_always_within_bounds(phoneme, local, level):
    result = score_phoneme(phoneme, local, level)
    assert math.isfinite(result.accuracy)
    assert 0.0 <= result.accuracy <= 1.0


def test_scoring_is_deterministic():
    local = _local(f1=650.0, f2=1700.0)
    first = score_phoneme("æ", local, "A1")
    for _ in range(5):
        assert score_phoneme("æ", local, "A1") == first


def test_level_error_penalty_and_labels():
    local = _local()
    at_c1 = score_phoneme("θ", local, "C1")
    at_a1 = score_phoneme("θ", local, "A1")
    # 0.5 base + 0.2*0.5 clarity + 0.2*(0.25/0.5) high band
    assert at_c1.accuracy == pytest.approx(0.7)
    assert at_a1.accuracy == pytest.approx(0.6)
    assert "θ/ð confusion" in at_a1.issues
    assert "θ/ð confusion" not in at_c1.issues


def test_vowel_without_formants_gets_half_credit():
    result = score_phoneme("æ", _local(clarity=0.0), "C2")
    assert result.accuracy == pytest.approx(0.5 + 0.3 * 0.5)
    assert "Vowel quality needs improvement" in result.issues


def test_vowel_on_target_formants_scores_higher():
    on_target = score_phoneme("ɪ", _local(f1=400.0, f2=1920.0), "C2")
    off_target = score_phoneme("ɪ", _local(f1=900.0, f2=800.0), "C2")
    assert on_target.accuracy > off_target.accuracy


def test_stop_burst_and_energy_terms():
    quiet = score_phoneme("t", _local(energy=0.001, peak=0.01, clarity=0.0), "C2")
    loud = score_phoneme("t", _local(energy=0.2, peak=0.5, clarity=0.0), "C2")
    assert quiet.accuracy == pytest.approx(0.35)
    assert loud.accuracy == pytest.approx(0.8)
    assert "Poor articulation" in quiet.issues


def test_produced_symbol_is_deterministic():
    assert produced_phoneme("θ", 0.95) == "θ"
    assert produced_phoneme("θ", 0.3) == "s"
    assert produced_phoneme("ð", 0.3) == "d"
    assert produced_phoneme("θ", 0.75) == "θ"
    assert produced_phoneme("k", 0.1) == "k"


def test_phoneme_classes():
    assert phoneme_class("æ") is PhonemeClass.VOWEL
    assert phoneme_class("tʃ") is PhonemeClass.AFFRICATE
    assert phoneme_class("ŋ") is PhonemeClass.NASAL
    assert phoneme_class("xx") is None


def test_aggregate_counts_and_percent():
    segments = [
        PhoneticSegment("cat", ["k", "æ", "t"], 0.0, 0.5, [1, 0], _local()),
        PhoneticSegment("the", ["θ", "e"], 0.5, 1.0, [1, 0], _local(energy=0.001, clarity=0.0)),
    ]
    result = SegmentalScorer().score(segments, "A1")
    assert result.vowels.count == 2
    assert result.consonants.count == 3
    all_scores = [d.accuracy for d in result.vowels.details + result.consonants.details]
    assert result.overall_percent == pytest.approx(sum(all_scores) / 5 * 100)
    weak_vowels = sum(1 for d in result.vowels.details if d.accuracy < 0.7)
    if weak_vowels:
        assert result.vowels.issues == [f"{weak_vowels} vowel sounds need improvement"]


def test_empty_segments():
    result = SegmentalScorer().score([], "B1")
    assert result.vowels.count == 0 and result.vowels.accuracy == 0.0
    assert result.consonants.count == 0
    assert result.overall_percent == 0.0
