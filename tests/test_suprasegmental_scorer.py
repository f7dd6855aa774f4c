# tests/test_suprasegmental_scorer.py
import pytest

from cefr_speech.models.phonetic_segment import LocalFeatures, PhoneticSegment
from cefr_speech.schemas import AcousticFeatures
from cefr_speech.services.suprasegmental_scorer import (
    SuprasegmentalScorer,
    count_syllables,
    detect_contour,
    stress_matches,
)


def _features(duration=2.0, series=None, envelope=None, mean=150.0, f0_range=30.0):
    f = AcousticFeatures.empty()
    f.temporal.duration = duration
    f.fundamental.series = series if series is not None else [150.0] * 80
    f.fundamental.mean = mean
    f.fundamental.range = f0_range
    f.energy.envelope = envelope if envelope is not None else [0.1] * int(duration * 100)
    return f


def _segment(word, energy, pitch):
    local = LocalFeatures(energy=energy, peak=energy, pitch=pitch, f1=0, f2=0, f3=0, clarity=0, high_band_ratio=0)
    return PhoneticSegment(word, [], 0.0, 1.0, [1, 0] if len(word) > 2 else [1], local)


def test_count_syllables():
    assert count_syllables("I am happy today") == 6
    assert count_syllables("") == 1
    assert count_syllables("brrr") == 1


def test_stress_matches_binarizes():
    assert stress_matches([1, 0], [0.9, 0.0])
    assert not stress_matches([1, 0], [0.4, 0.0])
    assert not stress_matches([1], [1, 0])


def test_uniform_prominence_gives_full_stress_accuracy():
    segments = [_segment("cat", 0.1, 150.0), _segment("sat", 0.1, 150.0)]
    stress = SuprasegmentalScorer.analyze_stress(segments)
    assert stress.accuracy == 1.0
    assert stress.issues == []
    assert stress.patterns[0].detected == [1.0, 0.0]


def test_weak_word_is_flagged():
    segments = [_segment("cat", 0.2, 200.0), _segment("sat", 0.2, 200.0), _segment("on", 0.001, 60.0)]
    stress = SuprasegmentalScorer.analyze_stress(segments)
    assert stress.patterns[2].correct is False
    assert stress.accuracy == pytest.approx(2 / 3)
    assert stress.issues == ["1 words have incorrect stress patterns"]


def test_stress_without_words():
    assert SuprasegmentalScorer.analyze_stress([]).accuracy == 0.0


def test_rhythm_timing_and_flow():
    rhythm = SuprasegmentalScorer.analyze_rhythm(_features(duration=2.0), "I am happy today")
    # 6 syllables * 0.2 s against 2 s of speech
    assert rhythm.timing.expected == pytest.approx(1.2)
    assert rhythm.timing.ratio == pytest.approx(0.6)
    assert rhythm.flow == pytest.approx(1.0)
    assert rhythm.accuracy == pytest.approx(0.8)
    assert "Speech tempo needs adjustment" in rhythm.issues


def test_rhythm_zero_duration_and_silent_envelope():
    rhythm = SuprasegmentalScorer.analyze_rhythm(_features(duration=0.0, envelope=[]), "hello")
    assert rhythm.timing.ratio == 0.5
    assert rhythm.flow == 0.5


def test_uneven_energy_lowers_flow():
    steady = SuprasegmentalScorer.analyze_rhythm(_features(envelope=[0.1] * 200), "hello")
    bursty = SuprasegmentalScorer.analyze_rhythm(_features(envelope=[0.02, 0.5] * 100), "hello")
    assert bursty.flow < steady.flow
    assert bursty.flow >= 0.5


def test_detect_contour():
    assert detect_contour([150.0] * 30 + [150.0 + i for i in range(15)]) == "rising"
    assert detect_contour([150.0] * 30 + [200.0 - i for i in range(15)]) == "falling"
    assert detect_contour([150.0] * 30 + [0.0] * 15) == "flat"
    assert detect_contour([]) == "flat"


def test_intonation_statement_vs_question():
    falling = [150.0] * 30 + [200.0 - 2 * i for i in range(15)]
    statement = SuprasegmentalScorer.analyze_intonation(_features(series=falling), "The sun is bright.")
    question = SuprasegmentalScorer.analyze_intonation(_features(series=falling), "Is the sun bright?")
    assert statement.contour.match and statement.contour.expected == "falling"
    assert not question.contour.match and question.contour.expected == "rising"
    assert statement.accuracy > question.accuracy


def test_expressiveness():
    flat = SuprasegmentalScorer.analyze_intonation(_features(f0_range=0.0), "hello")
    lively = SuprasegmentalScorer.analyze_intonation(_features(mean=150.0, f0_range=100.0), "hello")
    unvoiced = SuprasegmentalScorer.analyze_intonation(_features(mean=0.0, f0_range=0.0), "hello")
    assert flat.expressiveness == pytest.approx(0.7)
    assert lively.expressiveness == pytest.approx(1.0)
    assert unvoiced.expressiveness == pytest.approx(0.7)


def test_score_is_deterministic_and_bounded():
    scorer = SuprasegmentalScorer()
    features = _features()
    first = scorer.score(features, "The cat is black", "A1")
    second = scorer.score(features, "The cat is black", "A1")
    assert first == second
    assert 0.0 <= first.overall_percent <= 100.0
    mean = (first.stress.accuracy + first.rhythm.accuracy + first.intonation.accuracy) / 3 * 100
    assert first.overall_percent == pytest.approx(mean)
