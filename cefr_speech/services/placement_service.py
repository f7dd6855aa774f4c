"""
Adaptive CEFR placement.

Session state lives in an explicit ``PlacementAssessment`` record that is
loaded and saved at every call boundary. Each save bumps ``version``; a save
against a version that moved on is rejected with 409.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Dict, List, Optional
from uuid import uuid4

from fastapi import HTTPException

from cefr_speech.cefr_data import CEFR_LEVELS, LEVELS, next_level, previous_level
from cefr_speech.config import (
    PLACEMENT_ADVANCEMENT,
    PLACEMENT_MASTERY,
    PLACEMENT_STRUGGLE,
    PLACEMENT_MIN_ATTEMPTS,
    PLACEMENT_MAX_ATTEMPTS,
    PLACEMENT_VALID_HOURS,
)
from cefr_speech.repositories import AssessmentRepository
from cefr_speech.schemas import (
    LevelPerformance,
    PlacementAssessment,
    PlacementDecision,
    PlacementEvent,
    PlacementSummary,
    PlacementTestInfo,
)
from cefr_speech.time_utils import now_ms

logger = logging.getLogger(__name__)


def average(scores: List[int]) -> float:
    return sum(scores) / len(scores) if scores else 0.0


def consistency(scores: List[int]) -> float:
    """1 for perfectly steady scores, falling by 1 per 50 points of std deviation."""
    if len(scores) < 2:
        return 1.0
    mean = average(scores)
    variance = sum((s - mean) ** 2 for s in scores) / len(scores)
    return max(0.0, 1.0 - math.sqrt(variance) / 50.0)


def encouragement(latest: int) -> str:
    if latest >= 85:
        return "Excellent pronunciation! Keep up the great work."
    if latest >= 75:
        return "Good performance! You're making steady progress."
    if latest >= 60:
        return "Making progress. Focus on clear pronunciation."
    return "Keep practicing! Take your time with each word."


class PlacementService:
    def __init__(self, repo: AssessmentRepository):
        self._repo = repo

    # ------------------------
    # Persistence boundary
    # ------------------------
    def start(self) -> PlacementAssessment:
        assessment = PlacementAssessment(
            id=f"assess_{uuid4().hex}",
            version=0,
            started_at=now_ms(),
            current_level="A1",
            current_sentence_index=0,
            level_attempts={level: 0 for level in LEVELS},
            level_scores={level: [] for level in LEVELS},
        )
        self._repo.insert(assessment.id, assessment.started_at, assessment.model_dump())
        logger.info("Placement %s started", assessment.id)
        return assessment

    def load(self, assessment_id: str) -> PlacementAssessment:
        row = self._repo.find(assessment_id)
        if not row:
            raise HTTPException(status_code=404, detail="Assessment not found")
        return PlacementAssessment.model_validate(json.loads(row["state"]))

    def _save(self, assessment: PlacementAssessment) -> PlacementAssessment:
        expected = assessment.version
        updated = assessment.model_copy(update={"version": expected + 1})
        if not self._repo.update_if_version(updated.id, expected, updated.model_dump()):
            raise HTTPException(status_code=409, detail="Assessment was modified concurrently")
        return updated

    @staticmethod
    def is_active(assessment: PlacementAssessment, now: Optional[int] = None) -> bool:
        now = now_ms() if now is None else now
        age_ms = now - assessment.started_at
        return not assessment.placement_complete and age_ms < PLACEMENT_VALID_HOURS * 3600 * 1000

    def _load_active(self, assessment_id: str) -> PlacementAssessment:
        assessment = self.load(assessment_id)
        if assessment.placement_complete:
            raise HTTPException(status_code=409, detail="Assessment already complete")
        if not self.is_active(assessment):
            raise HTTPException(status_code=410, detail="Assessment expired")
        return assessment

    # ------------------------
    # Flow
    # ------------------------
    def process_result(
        self, assessment_id: str, composite: int, expected_version: Optional[int] = None
    ) -> PlacementDecision:
        """Record one composite score and decide where the placement goes next."""
        assessment = self._load_active(assessment_id)
        if expected_version is not None and expected_version != assessment.version:
            raise HTTPException(status_code=409, detail="Stale assessment version")

        level = assessment.current_level
        scores = dict(assessment.level_scores)
        attempts = dict(assessment.level_attempts)
        scores[level] = list(scores.get(level, [])) + [int(composite)]
        attempts[level] = attempts.get(level, 0) + 1
        history = list(assessment.history) + [
            PlacementEvent(
                level=level,
                sentence_index=assessment.current_sentence_index,
                score=int(composite),
                timestamp=now_ms(),
            )
        ]
        state: Dict[str, object] = {
            "level_scores": scores,
            "level_attempts": attempts,
            "history": history,
        }

        decision = self.decide(level, int(composite), scores[level], attempts[level])
        if decision.action == "advance_level":
            state.update(current_level=decision.next_level, current_sentence_index=0)
        elif decision.action == "complete_assessment":
            state.update(placement_complete=True, assigned_level=decision.assigned_level)
        else:
            index = assessment.current_sentence_index + 1
            state.update(current_sentence_index=index)
            if index >= len(CEFR_LEVELS[level]["sentences"]):
                forced = self.force_progression(level, scores[level])
                if forced.action == "advance_level":
                    state.update(current_level=forced.next_level, current_sentence_index=0)
                else:
                    state.update(placement_complete=True, assigned_level=forced.assigned_level)

        saved = self._save(assessment.model_copy(update=state))
        logger.debug("Placement %s: %s at %s (score=%d)", saved.id, decision.action, level, composite)
        return decision.model_copy(update={"assessment": saved})

    @staticmethod
    def decide(level: str, latest: int, scores: List[int], attempts: int) -> PlacementDecision:
        avg = average(scores)
        recent_avg = average(scores[-2:])

        advance = attempts >= PLACEMENT_MIN_ATTEMPTS and (
            (recent_avg >= PLACEMENT_MASTERY and avg >= PLACEMENT_ADVANCEMENT)
            or (attempts >= PLACEMENT_MAX_ATTEMPTS and avg >= PLACEMENT_ADVANCEMENT)
        )
        if advance:
            upper = next_level(level)
            if upper:
                return PlacementDecision(
                    action="advance_level",
                    next_level=upper,
                    current_level=level,
                    reason=f"Strong performance (avg: {round(avg)}%) indicates readiness for {upper}",
                    feedback=f"Excellent work! Moving to {upper} level.",
                    average_score=round(avg),
                )
            return PlacementDecision(
                action="complete_assessment",
                assigned_level=level,
                reason="Excellent performance at highest level",
                feedback=f"Outstanding! You've demonstrated {level} level proficiency.",
                average_score=round(avg),
            )

        settle = attempts >= PLACEMENT_MIN_ATTEMPTS and (
            PLACEMENT_STRUGGLE <= avg < PLACEMENT_ADVANCEMENT or attempts >= PLACEMENT_MAX_ATTEMPTS
        )
        if settle:
            return PlacementDecision(
                action="complete_assessment",
                assigned_level=level,
                reason=f"Consistent performance indicates {level} level",
                feedback=f"Assessment complete. Your CEFR level is {level}.",
                average_score=round(avg),
            )

        return PlacementDecision(
            action="next_sentence",
            current_level=level,
            reason=f"Continuing {level} assessment",
            feedback=encouragement(latest),
            average_score=round(avg),
        )

    @staticmethod
    def force_progression(level: str, scores: List[int]) -> PlacementDecision:
        if average(scores) >= PLACEMENT_ADVANCEMENT:
            upper = next_level(level)
            if upper:
                return PlacementDecision(
                    action="advance_level",
                    next_level=upper,
                    current_level=level,
                    reason="Completed all sentences with good performance",
                )
        return PlacementDecision(
            action="complete_assessment",
            assigned_level=level,
            reason="Assessment complete",
        )

    def current_test(self, assessment_id: str) -> PlacementTestInfo:
        assessment = self._load_active(assessment_id)
        level = assessment.current_level
        sentences = CEFR_LEVELS[level]["sentences"]
        return PlacementTestInfo(
            level=level,
            sentence_index=assessment.current_sentence_index,
            sentence=sentences[assessment.current_sentence_index],
            attempts_at_level=assessment.level_attempts.get(level, 0),
            average_at_level=round(average(assessment.level_scores.get(level, []))),
            total_sentences=len(sentences),
        )

    def summary(self, assessment_id: str) -> PlacementSummary:
        assessment = self.load(assessment_id)
        if not assessment.placement_complete or not assessment.assigned_level:
            raise HTTPException(status_code=409, detail="Assessment not complete")

        performance: Dict[str, LevelPerformance] = {}
        for level in LEVELS:
            scores = assessment.level_scores.get(level, [])
            if scores:
                performance[level] = LevelPerformance(
                    attempts=assessment.level_attempts.get(level, 0),
                    average_score=round(average(scores)),
                    best_score=max(scores),
                    consistency=consistency(scores),
                )

        return PlacementSummary(
            assessment_id=assessment.id,
            assigned_level=assessment.assigned_level,
            total_attempts=sum(assessment.level_attempts.values()),
            level_performance=performance,
            recommendations=self.recommendations(
                assessment.assigned_level, assessment.level_scores.get(assessment.assigned_level, [])
            ),
        )

    @staticmethod
    def recommendations(level: str, scores: List[int]) -> List[Dict[str, str]]:
        avg = average(scores)
        if avg >= 85:
            upper = next_level(level)
            if upper:
                message = f"Consider challenging yourself with {upper} level content for continued growth."
            else:
                message = f"Keep refining your {level} pronunciation with authentic material."
            return [{"type": "advancement", "message": message}]
        if avg >= 70:
            return [{
                "type": "consolidation",
                "message": f"Focus on consistent practice at {level} level to build confidence.",
            }]
        lower = previous_level(level)
        message = f"Practice more with {level} level content"
        message += f" and consider reviewing {lower} level basics." if lower else "."
        return [{"type": "reinforcement", "message": message}]
