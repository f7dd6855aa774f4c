"""CEFR level sentences, grade thresholds and scoring weights."""

from __future__ import annotations

from typing import Dict, List, Tuple

LEVELS: List[str] = ["A1", "A2", "B1", "B2", "C1", "C2"]

CEFR_LEVELS: Dict[str, dict] = {
    "A1": {
        "name": "Beginner",
        "description": "Basic words and simple phrases",
        "sentences": [
            {"text": "I am happy today", "ideal_duration": 3},
            {"text": "The cat is black", "ideal_duration": 3},
            {"text": "My name is John", "ideal_duration": 3},
            {"text": "I like pizza very much", "ideal_duration": 4},
            {"text": "The sun is bright", "ideal_duration": 3},
        ],
    },
    "A2": {
        "name": "Elementary",
        "description": "Simple sentences about familiar topics",
        "sentences": [
            {"text": "I went to the store yesterday", "ideal_duration": 4},
            {"text": "She lives in a big house", "ideal_duration": 4},
            {"text": "We usually have breakfast at eight", "ideal_duration": 5},
            {"text": "The weather is very nice today", "ideal_duration": 4},
            {"text": "I can speak English a little", "ideal_duration": 5},
        ],
    },
    "B1": {
        "name": "Intermediate",
        "description": "Clear sentences about familiar matters",
        "sentences": [
            {"text": "I have been working here for three years", "ideal_duration": 5},
            {"text": "If I had more time, I would travel around the world", "ideal_duration": 7},
            {"text": "The movie was more interesting than I expected", "ideal_duration": 6},
            {"text": "She decided to quit her job and start her own business", "ideal_duration": 8},
            {"text": "Technology has changed the way we communicate", "ideal_duration": 6},
        ],
    },
    "B2": {
        "name": "Upper Intermediate",
        "description": "Complex sentences on concrete and abstract topics",
        "sentences": [
            {"text": "The comprehensive analysis revealed significant discrepancies in the data", "ideal_duration": 8},
            {"text": "Environmental sustainability requires unprecedented global cooperation", "ideal_duration": 7},
            {"text": "Despite the challenging circumstances, the team maintained their optimism", "ideal_duration": 8},
            {"text": "The implementation of artificial intelligence has revolutionized various industries", "ideal_duration": 9},
            {"text": "Social media platforms have fundamentally altered interpersonal communication", "ideal_duration": 8},
        ],
    },
    "C1": {
        "name": "Advanced",
        "description": "Complex texts with implicit meaning",
        "sentences": [
            {"text": "The paradigmatic shift in contemporary epistemological frameworks necessitates rigorous reassessment", "ideal_duration": 10},
            {"text": "Multifaceted socioeconomic variables contribute to the perpetuation of systemic inequalities", "ideal_duration": 9},
            {"text": "The intricate interplay between cognitive biases and decision-making processes merits investigation", "ideal_duration": 10},
            {"text": "Technological determinism versus social construction represents an ongoing academic discourse", "ideal_duration": 9},
            {"text": "The phenomenological approach elucidates subjective experiences within objective frameworks", "ideal_duration": 9},
        ],
    },
    "C2": {
        "name": "Proficient",
        "description": "Complex academic and professional texts",
        "sentences": [
            {"text": "The hermeneutical explication of postmodern dialectical tensions necessitates phenomenological deconstruction", "ideal_duration": 11},
            {"text": "Epistemological relativism challenges foundationalist presuppositions through metacognitive reflexivity", "ideal_duration": 10},
            {"text": "The ontological implications of quantum indeterminacy transcend classical mechanistic paradigms", "ideal_duration": 10},
            {"text": "Poststructuralist critiques of logocentrism reveal inherent aporias in Western philosophical traditions", "ideal_duration": 11},
            {"text": "The intertextual dynamics of meaning-making processes subvert hegemonic discursive formations", "ideal_duration": 10},
        ],
    },
}

# Descending: the first threshold <= composite wins.
GRADE_THRESHOLDS: Tuple[Tuple[str, int], ...] = (
    ("C2", 92),
    ("C1", 85),
    ("B2", 75),
    ("B1", 65),
    ("A2", 55),
    ("A1", 0),
)

SCORING_WEIGHTS: Dict[str, float] = {
    "pronunciation": 0.4,
    "fluency": 0.3,
    "completeness": 0.2,
    "clarity": 0.1,
}

GRADE_INFO: Dict[str, dict] = {
    "A1": {"name": "Beginner", "color": "#ff6b6b", "description": "Basic pronunciation skills"},
    "A2": {"name": "Elementary", "color": "#ffa726", "description": "Developing pronunciation"},
    "B1": {"name": "Intermediate", "color": "#ffeb3b", "description": "Good pronunciation control"},
    "B2": {"name": "Upper Intermediate", "color": "#8bc34a", "description": "Strong pronunciation skills"},
    "C1": {"name": "Advanced", "color": "#4caf50", "description": "Excellent pronunciation"},
    "C2": {"name": "Proficient", "color": "#2196f3", "description": "Near-native pronunciation"},
}


def level_index(level: str) -> int:
    """Position of a level in the A1..C2 ordering."""
    return LEVELS.index(level)


def next_level(level: str):
    idx = level_index(level)
    return LEVELS[idx + 1] if idx < len(LEVELS) - 1 else None


def previous_level(level: str):
    idx = level_index(level)
    return LEVELS[idx - 1] if idx > 0 else None
