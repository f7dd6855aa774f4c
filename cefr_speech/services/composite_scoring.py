"""Composite score: weighted pronunciation, fluency, completeness and clarity."""

import math
import re
from typing import List, Optional

from cefr_speech.cefr_data import GRADE_INFO, GRADE_THRESHOLDS, SCORING_WEIGHTS
from cefr_speech.config import MIN_FLUENCY, MISSING_COMPLETENESS, OFFLINE_CLARITY
from cefr_speech.schemas import CompositeScore, GradeInfo, IndividualScores

_NON_WORD_RE = re.compile(r"[^\w\s]")


def get_words(text: str) -> List[str]:
    return [w for w in _NON_WORD_RE.sub("", (text or "").lower()).split() if w]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


class CompositeScoringEngine:
    def __init__(self, weights: Optional[dict] = None):
        self.weights = dict(weights or SCORING_WEIGHTS)

    @staticmethod
    def pronunciation_score(accuracy: Optional[float]) -> float:
        if accuracy is None or not math.isfinite(accuracy):
            return 0.0
        return _clamp01(float(accuracy))

    @staticmethod
    def fluency_score(duration: Optional[float], ideal_duration: Optional[float]) -> float:
        """Staircase over the relative deviation from the ideal reading time."""
        if not duration or not ideal_duration or duration <= 0 or ideal_duration <= 0:
            return 0.0
        deviation = abs(duration - ideal_duration) / ideal_duration
        if deviation <= 0.1:
            return 1.0
        if deviation <= 0.2:
            return 0.9
        if deviation <= 0.3:
            return 0.8
        if deviation <= 0.5:
            return 0.6
        if deviation <= 0.7:
            return 0.4
        return max(MIN_FLUENCY, 1.0 - deviation)

    @staticmethod
    def completeness_score(transcription: Optional[str], expected_text: Optional[str]) -> float:
        if not transcription or not expected_text:
            return MISSING_COMPLETENESS
        expected = get_words(expected_text)
        if not expected:
            return MISSING_COMPLETENESS
        return min(1.0, len(get_words(transcription)) / len(expected))

    @staticmethod
    def clarity_score(pronunciation: float, transcription: Optional[str], is_offline: bool) -> float:
        if is_offline:
            return OFFLINE_CLARITY
        return pronunciation * 0.8 + (0.2 if transcription else 0.0)

    @staticmethod
    def map_to_grade(composite: float) -> str:
        for grade, threshold in GRADE_THRESHOLDS:
            if composite >= threshold:
                return grade
        return "A1"

    def score(
        self,
        recognition_accuracy: Optional[float],
        duration: Optional[float],
        ideal_duration: Optional[float],
        transcription: Optional[str] = None,
        expected_text: Optional[str] = None,
        is_offline: bool = False,
    ) -> CompositeScore:
        pronunciation = self.pronunciation_score(recognition_accuracy)
        individual = IndividualScores(
            pronunciation=pronunciation,
            fluency=self.fluency_score(duration, ideal_duration),
            completeness=self.completeness_score(transcription, expected_text),
            clarity=self.clarity_score(pronunciation, transcription, is_offline),
        )
        weighted = sum(getattr(individual, key) * weight for key, weight in self.weights.items())
        composite = max(0, min(100, round_half_up(weighted * 100)))
        return CompositeScore(
            individual=individual,
            composite=composite,
            grade=self.map_to_grade(composite),
        )

    @staticmethod
    def grade_info(grade: str) -> GradeInfo:
        return GradeInfo(**GRADE_INFO.get(grade, GRADE_INFO["A1"]))

    @staticmethod
    def detailed_feedback(score: CompositeScore) -> List[str]:
        feedback: List[str] = []
        if score.individual.pronunciation < 0.7:
            feedback.append("Focus on clear pronunciation of individual sounds")
        if score.individual.fluency < 0.7:
            feedback.append("Work on speaking at a natural pace")
        if score.individual.completeness < 0.8:
            feedback.append("Ensure you read the complete sentence")
        if score.individual.clarity < 0.7:
            feedback.append("Speak more clearly and distinctly")
        if not feedback:
            feedback.append("Excellent work! Keep practicing to maintain your skills.")
        return feedback
