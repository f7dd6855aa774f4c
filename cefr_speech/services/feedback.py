from typing import Callable, Dict, List, NamedTuple, Optional

from cefr_speech.config import STRENGTH_THRESHOLD, IMPROVEMENT_THRESHOLD
from cefr_speech.schemas import FeedbackBundle, SegmentalResult, SuprasegmentalResult


class FeedbackRule(NamedTuple):
    dimension: str
    accuracy: Callable[[SegmentalResult, SuprasegmentalResult], float]
    strength: Optional[str]
    improvement: Optional[str]
    tip: Optional[str]


FEEDBACK_RULES = (
    FeedbackRule(
        "vowels",
        lambda seg, supra: seg.vowels.accuracy,
        "Excellent vowel pronunciation",
        "Focus on vowel clarity and length",
        "Practice vowel sounds in isolation before combining in words",
    ),
    FeedbackRule(
        "consonants",
        lambda seg, supra: seg.consonants.accuracy,
        "Strong consonant articulation",
        "Work on consonant precision",
        "Pay attention to tongue and lip positions for each consonant",
    ),
    FeedbackRule(
        "stress",
        lambda seg, supra: supra.stress.accuracy,
        "Good word stress patterns",
        "Work on word stress placement",
        "Exaggerate the stressed syllable of longer words while practicing",
    ),
    FeedbackRule(
        "rhythm",
        lambda seg, supra: supra.rhythm.accuracy,
        "Natural speech rhythm",
        "Improve speech rhythm and timing",
        "Practice with a metronome or rhythm exercises",
    ),
    FeedbackRule(
        "intonation",
        lambda seg, supra: supra.intonation.accuracy,
        "Expressive intonation",
        "Vary your pitch to match the sentence type",
        "Let your voice fall at the end of statements and rise at the end of yes/no questions",
    ),
)

LEVEL_TIPS: Dict[str, List[str]] = {
    "A": [
        "Focus on clear articulation of individual sounds",
        "Practice common consonant and vowel sounds",
    ],
    "B": [
        "Work on word stress patterns and connected speech",
        "Practice intonation in questions and statements",
    ],
    "C": [
        "Focus on subtle pronunciation features and natural rhythm",
        "Work on register-appropriate pronunciation variations",
    ],
}


def level_tips(level: str) -> List[str]:
    return list(LEVEL_TIPS.get((level or "A")[:1].upper(), LEVEL_TIPS["A"]))


class FeedbackSynthesizer:
    def synthesize(
        self,
        segmental: SegmentalResult,
        suprasegmental: SuprasegmentalResult,
        level: str,
    ) -> FeedbackBundle:
        bundle = FeedbackBundle(level_appropriate=level_tips(level))
        for rule in FEEDBACK_RULES:
            accuracy = rule.accuracy(segmental, suprasegmental)
            if accuracy > STRENGTH_THRESHOLD and rule.strength:
                bundle.strengths.append(rule.strength)
            elif accuracy < IMPROVEMENT_THRESHOLD:
                if rule.improvement:
                    bundle.improvements.append(rule.improvement)
                if rule.tip:
                    bundle.specific_tips.append(rule.tip)
        return bundle
