"""Per-phoneme accuracy scoring from local acoustic cues."""

import logging
import math
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from cefr_speech.config import (
    BASE_ACCURACY,
    LOW_ENERGY_THRESHOLD,
    HIGH_ENERGY_THRESHOLD,
    ENERGY_PENALTY,
    ENERGY_BONUS,
    CLARITY_WEIGHT,
    FORMANT_WEIGHT,
    CONSONANT_CUE_WEIGHT,
    FRICATIVE_HIGH_BAND_TARGET,
    STOP_BURST_THRESHOLD,
    LEVEL_ERROR_PENALTY,
    LOW_ACCURACY_THRESHOLD,
)
from cefr_speech.models.phonetic_segment import LocalFeatures, PhoneticSegment
from cefr_speech.schemas import PhonemeClassResult, PhonemeScore, SegmentalResult

logger = logging.getLogger(__name__)


class PhonemeClass(str, Enum):
    VOWEL = "vowel"
    STOP = "stop"
    FRICATIVE = "fricative"
    AFFRICATE = "affricate"
    NASAL = "nasal"
    LIQUID = "liquid"
    GLIDE = "glide"


PHONEME_CLASSES: Dict[PhonemeClass, FrozenSet[str]] = {
    PhonemeClass.VOWEL: frozenset({
        "æ", "ɑ:", "ʌ", "eɪ", "e", "ɛ", "i:", "ɪ", "aɪ", "ɒ", "ɔ:",
        "əʊ", "ʊ", "u:", "ju:", "ə", "ɜ:", "aʊ", "ɔɪ",
    }),
    PhonemeClass.STOP: frozenset({"p", "b", "t", "d", "k", "g"}),
    PhonemeClass.FRICATIVE: frozenset({"f", "v", "θ", "ð", "s", "z", "ʃ", "ʒ", "h"}),
    PhonemeClass.AFFRICATE: frozenset({"tʃ", "dʒ"}),
    PhonemeClass.NASAL: frozenset({"m", "n", "ŋ"}),
    PhonemeClass.LIQUID: frozenset({"l", "r"}),
    PhonemeClass.GLIDE: frozenset({"w", "j"}),
}

# Reference (F1, F2) in Hz for monophthongs.
VOWEL_FORMANT_TARGETS: Dict[str, Tuple[float, float]] = {
    "i:": (280.0, 2250.0),
    "ɪ": (400.0, 1920.0),
    "e": (550.0, 1770.0),
    "ɛ": (550.0, 1770.0),
    "æ": (690.0, 1660.0),
    "ʌ": (640.0, 1190.0),
    "ɑ:": (710.0, 1100.0),
    "ɒ": (600.0, 900.0),
    "ɔ:": (450.0, 750.0),
    "ʊ": (450.0, 1030.0),
    "u:": (310.0, 870.0),
    "ə": (500.0, 1500.0),
    "ɜ:": (560.0, 1480.0),
}

# Level -> ((phonemes, issue labels), ...). C1/C2 errors are prosodic, not phoneme-level.
LEVEL_ERRORS: Dict[str, Tuple[Tuple[FrozenSet[str], Tuple[str, ...]], ...]] = {
    "A1": (
        (frozenset({"θ", "ð"}), ("θ/ð confusion", "consonant cluster difficulty")),
        (frozenset({"r"}), ("r-sound articulation", "r-coloring")),
        (frozenset({"æ"}), ("vowel length", "vowel quality")),
    ),
    "A2": (
        (frozenset({"ɪ", "i:"}), ("short/long vowel distinction", "vowel tenseness")),
        (frozenset({"w", "v"}), ("consonant confusion", "lip positioning")),
        (frozenset({"ŋ"}), ("final consonant drops", "consonant clusters")),
    ),
    "B1": (
        (frozenset({"əʊ", "aʊ"}), ("diphthong quality", "vowel gliding")),
        (frozenset({"ʃ", "tʃ"}), ("fricative/affricate distinction", "tongue positioning")),
    ),
    "B2": (
        (frozenset({"ɜ:", "ə"}), ("schwa usage", "vowel reduction")),
        (frozenset({"l", "r"}), ("liquid consonant distinction", "final consonants")),
    ),
    "C1": (),
    "C2": (),
}

# Most common substitution first.
SUBSTITUTIONS: Dict[str, Tuple[str, ...]] = {
    "θ": ("s", "f", "t"),
    "ð": ("d", "z", "v"),
    "ɪ": ("i:", "e"),
    "i:": ("ɪ", "eɪ"),
    "æ": ("e", "ʌ"),
}


def phoneme_class(phoneme: str) -> Optional[PhonemeClass]:
    for cls, members in PHONEME_CLASSES.items():
        if phoneme in members:
            return cls
    return None


def is_vowel(phoneme: str) -> bool:
    return phoneme_class(phoneme) is PhonemeClass.VOWEL


def _finite(value: float, default: float = 0.0) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return value if math.isfinite(value) else default


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def level_error_labels(phoneme: str, level: str) -> List[str]:
    labels: List[str] = []
    for phonemes, issues in LEVEL_ERRORS.get(level, ()):
        if phoneme in phonemes:
            labels.extend(issues)
    return labels


def phoneme_feedback(accuracy: float) -> str:
    if accuracy > 0.9:
        return "Excellent pronunciation"
    if accuracy > 0.7:
        return "Good, with minor improvements needed"
    if accuracy > 0.5:
        return "Needs practice - focus on tongue/lip position"
    return "Requires significant work - consider intensive practice"


def produced_phoneme(target: str, accuracy: float) -> str:
    subs = SUBSTITUTIONS.get(target)
    if accuracy > 0.9 or not subs:
        return target
    if accuracy < 0.6:
        return subs[0]
    return target


def _formant_credit(phoneme: str, f1: float, f2: float) -> float:
    target = VOWEL_FORMANT_TARGETS.get(phoneme)
    if target is None or f1 <= 0.0 or f2 <= 0.0:
        return 0.5
    t1, t2 = target
    err = (abs(f1 - t1) / t1 + abs(f2 - t2) / t2) / 2.0
    return 1.0 - min(1.0, err)


def score_phoneme(phoneme: str, local: Optional[LocalFeatures], level: str) -> PhonemeScore:
    """Score one phoneme against the acoustic cues of its word slice."""
    if local is None:
        energy = peak = clarity = high_band = f1 = f2 = 0.0
    else:
        energy = max(0.0, _finite(local.energy))
        peak = max(0.0, _finite(local.peak))
        clarity = _clamp01(_finite(local.clarity))
        high_band = _clamp01(_finite(local.high_band_ratio))
        f1 = _finite(local.f1)
        f2 = _finite(local.f2)

    accuracy = BASE_ACCURACY
    if energy < LOW_ENERGY_THRESHOLD:
        accuracy -= ENERGY_PENALTY
    elif energy > HIGH_ENERGY_THRESHOLD:
        accuracy += ENERGY_BONUS
    accuracy += CLARITY_WEIGHT * clarity

    cls = phoneme_class(phoneme)
    if cls is PhonemeClass.VOWEL:
        accuracy += FORMANT_WEIGHT * _formant_credit(phoneme, f1, f2)
    elif cls in (PhonemeClass.FRICATIVE, PhonemeClass.AFFRICATE):
        accuracy += CONSONANT_CUE_WEIGHT * min(1.0, high_band / FRICATIVE_HIGH_BAND_TARGET)
    elif cls is PhonemeClass.STOP:
        if peak > STOP_BURST_THRESHOLD:
            accuracy += CONSONANT_CUE_WEIGHT
    else:
        accuracy += CONSONANT_CUE_WEIGHT * 0.5

    labels = level_error_labels(phoneme, level)
    matches = sum(1 for phonemes, _ in LEVEL_ERRORS.get(level, ()) if phoneme in phonemes)
    accuracy = _clamp01(accuracy - LEVEL_ERROR_PENALTY * matches)

    issues: List[str] = []
    if accuracy < 0.6:
        issues.append("Poor articulation")
    if accuracy < 0.8 and cls is PhonemeClass.VOWEL:
        issues.append("Vowel quality needs improvement")
    issues.extend(labels)

    return PhonemeScore(
        phoneme=phoneme,
        accuracy=accuracy,
        target=phoneme,
        produced=produced_phoneme(phoneme, accuracy),
        issues=issues,
        feedback=phoneme_feedback(accuracy),
    )


def _aggregate(scores: List[PhonemeScore], noun: str) -> PhonemeClassResult:
    if not scores:
        return PhonemeClassResult(count=0, accuracy=0.0, issues=[], details=[])
    weak = sum(1 for s in scores if s.accuracy < LOW_ACCURACY_THRESHOLD)
    issues = [f"{weak} {noun}"] if weak else []
    return PhonemeClassResult(
        count=len(scores),
        accuracy=sum(s.accuracy for s in scores) / len(scores),
        issues=issues,
        details=scores,
    )


class SegmentalScorer:
    def score(self, segments: List[PhoneticSegment], level: str) -> SegmentalResult:
        vowels: List[PhonemeScore] = []
        consonants: List[PhonemeScore] = []
        for segment in segments:
            for phoneme in segment.phonemes:
                result = score_phoneme(phoneme, segment.local_features, level)
                (vowels if is_vowel(phoneme) else consonants).append(result)

        everything = vowels + consonants
        overall = sum(s.accuracy for s in everything) / len(everything) * 100 if everything else 0.0
        logger.debug("Segmental: %d vowels, %d consonants, %.1f%%", len(vowels), len(consonants), overall)
        return SegmentalResult(
            vowels=_aggregate(vowels, "vowel sounds need improvement"),
            consonants=_aggregate(consonants, "consonant sounds need work"),
            overall_percent=overall,
        )
