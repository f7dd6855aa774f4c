"""Stress, rhythm and intonation scoring."""

import re
import logging
from typing import List, Optional

import numpy as np

from cefr_speech.config import (
    SECONDS_PER_SYLLABLE,
    STRESS_SCALE_MIN,
    STRESS_SCALE_MAX,
    FLOW_CV_LIMIT,
    FLOW_MIN,
    CONTOUR_MATCH_SCORE,
    CONTOUR_MISMATCH_SCORE,
    EXPRESSIVENESS_BASE,
    EXPRESSIVE_RANGE_TARGET,
    SILENCE_FRAME_RMS_THRESHOLD,
    LOW_ACCURACY_THRESHOLD,
)
from cefr_speech.models.phonetic_segment import PhoneticSegment
from cefr_speech.schemas import (
    AcousticFeatures,
    IntonationContour,
    IntonationResult,
    RhythmResult,
    RhythmTiming,
    StressPattern,
    StressResult,
    SuprasegmentalResult,
)
from cefr_speech.services.segmenter import PhoneticSegmenter

logger = logging.getLogger(__name__)

SYLLABLE_RE = re.compile(r"[aeiouy]+")


def count_syllables(text: str) -> int:
    return len(SYLLABLE_RE.findall((text or "").lower())) or 1


def stress_matches(expected: List[float], detected: List[float]) -> bool:
    if len(expected) != len(detected):
        return False
    return all((e > 0.5) == (d > 0.5) for e, d in zip(expected, detected))


def _ratio(value: float, mean: float) -> float:
    return value / mean if mean > 0 else 1.0


def detect_contour(pitch_series: List[float]) -> str:
    """Direction of voiced F0 over the last third of the track."""
    series = np.asarray(pitch_series, dtype=np.float64)
    start = (2 * series.size) // 3
    idx = np.arange(start, series.size)
    tail = series[start:]
    voiced = tail > 0
    if int(voiced.sum()) < 2:
        return "flat"
    slope = float(np.polyfit(idx[voiced], tail[voiced], 1)[0])
    if slope > 1e-9:
        return "rising"
    if slope < -1e-9:
        return "falling"
    return "flat"


class SuprasegmentalScorer:
    def __init__(self, segmenter: Optional[PhoneticSegmenter] = None):
        self.segmenter = segmenter or PhoneticSegmenter()

    def score(
        self,
        features: AcousticFeatures,
        text: str,
        level: str,
        segments: Optional[List[PhoneticSegment]] = None,
    ) -> SuprasegmentalResult:
        if segments is None:
            segments = self.segmenter.segment(features, text)

        stress = self.analyze_stress(segments)
        rhythm = self.analyze_rhythm(features, text)
        intonation = self.analyze_intonation(features, text)
        overall = (stress.accuracy + rhythm.accuracy + intonation.accuracy) / 3 * 100
        logger.debug(
            "Suprasegmental (%s): stress=%.2f rhythm=%.2f intonation=%.2f",
            level, stress.accuracy, rhythm.accuracy, intonation.accuracy,
        )
        return SuprasegmentalResult(
            stress=stress,
            rhythm=rhythm,
            intonation=intonation,
            overall_percent=overall,
        )

    @staticmethod
    def analyze_stress(segments: List[PhoneticSegment]) -> StressResult:
        if not segments:
            return StressResult(accuracy=0.0, patterns=[], issues=[])

        energies = [s.local_features.energy if s.local_features else 0.0 for s in segments]
        pitches = [s.local_features.pitch if s.local_features else 0.0 for s in segments]
        mean_energy = float(np.mean(energies))
        mean_pitch = float(np.mean(pitches))

        patterns: List[StressPattern] = []
        for seg, energy, pitch in zip(segments, energies, pitches):
            prominence = (_ratio(energy, mean_energy) + _ratio(pitch, mean_pitch)) / 2.0
            scale = min(STRESS_SCALE_MAX, max(STRESS_SCALE_MIN, prominence))
            expected = [float(v) for v in seg.predicted_stress]
            detected = [v * scale for v in expected]
            patterns.append(
                StressPattern(
                    word=seg.word,
                    expected=expected,
                    detected=detected,
                    correct=stress_matches(expected, detected),
                )
            )

        incorrect = sum(1 for p in patterns if not p.correct)
        issues = [f"{incorrect} words have incorrect stress patterns"] if incorrect else []
        return StressResult(
            accuracy=(len(patterns) - incorrect) / len(patterns),
            patterns=patterns,
            issues=issues,
        )

    @staticmethod
    def analyze_rhythm(features: AcousticFeatures, text: str) -> RhythmResult:
        expected = count_syllables(text) * SECONDS_PER_SYLLABLE
        actual = float(features.temporal.duration)
        timing = min(1.0, expected / actual) if actual > 0 else 0.5

        envelope = np.asarray(features.energy.envelope, dtype=np.float64)
        active = envelope[envelope >= SILENCE_FRAME_RMS_THRESHOLD]
        if active.size and active.mean() > 0:
            cv = float(active.std() / active.mean())
            flow = 1.0 - min(1.0, cv / FLOW_CV_LIMIT) * (1.0 - FLOW_MIN)
        else:
            flow = 0.5

        issues: List[str] = []
        if timing < LOW_ACCURACY_THRESHOLD:
            issues.append("Speech tempo needs adjustment")
        if flow < LOW_ACCURACY_THRESHOLD:
            issues.append("Work on speech flow and smoothness")

        return RhythmResult(
            accuracy=(timing + flow) / 2.0,
            timing=RhythmTiming(expected=expected, actual=actual, ratio=timing),
            flow=flow,
            issues=issues,
        )

    @staticmethod
    def analyze_intonation(features: AcousticFeatures, text: str) -> IntonationResult:
        expected = "rising" if (text or "").strip().endswith("?") else "falling"
        detected = detect_contour(features.fundamental.series)
        contour_score = CONTOUR_MATCH_SCORE if expected == detected else CONTOUR_MISMATCH_SCORE

        mean_f0 = float(features.fundamental.mean)
        if mean_f0 > 0:
            spread = (float(features.fundamental.range) / mean_f0) / EXPRESSIVE_RANGE_TARGET
            expressiveness = EXPRESSIVENESS_BASE + (1.0 - EXPRESSIVENESS_BASE) * min(1.0, spread)
        else:
            expressiveness = EXPRESSIVENESS_BASE

        issues: List[str] = []
        if contour_score < LOW_ACCURACY_THRESHOLD:
            issues.append("Practice question and statement intonation patterns")
        if expressiveness < LOW_ACCURACY_THRESHOLD:
            issues.append("Add more variation and expression to speech")

        return IntonationResult(
            accuracy=(contour_score + expressiveness) / 2.0,
            contour=IntonationContour(expected=expected, detected=detected, match=expected == detected),
            expressiveness=expressiveness,
            issues=issues,
        )
