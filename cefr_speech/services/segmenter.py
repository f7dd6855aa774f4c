import re
import logging
from typing import Dict, List, Tuple

import numpy as np

from cefr_speech.config import PITCH_WINDOW_S, SILENCE_WINDOW_S
from cefr_speech.models.phonetic_segment import LocalFeatures, PhoneticSegment
from cefr_speech.schemas import AcousticFeatures

logger = logging.getLogger(__name__)

WORD_RE = re.compile(r"[a-z']+")

# Greedy longest-match grapheme -> IPA table.
GRAPHEME_TO_IPA: Dict[str, Tuple[str, ...]] = {
    # trigraphs
    "igh": ("aɪ",),
    "tch": ("tʃ",),
    # consonant digraphs
    "th": ("θ",),
    "sh": ("ʃ",),
    "ch": ("tʃ",),
    "ng": ("ŋ",),
    "ph": ("f",),
    "ck": ("k",),
    "wh": ("w",),
    # vowel digraphs
    "ee": ("i:",),
    "ea": ("i:",),
    "oo": ("u:",),
    "ai": ("eɪ",),
    "ay": ("eɪ",),
    "ou": ("aʊ",),
    "ow": ("əʊ",),
    "oy": ("ɔɪ",),
    "oi": ("ɔɪ",),
    "er": ("ə",),
    # single letters
    "a": ("æ",),
    "e": ("e",),
    "i": ("ɪ",),
    "o": ("ɒ",),
    "u": ("ʌ",),
    "y": ("ɪ",),
    "b": ("b",),
    "c": ("k",),
    "d": ("d",),
    "f": ("f",),
    "g": ("g",),
    "h": ("h",),
    "j": ("dʒ",),
    "k": ("k",),
    "l": ("l",),
    "m": ("m",),
    "n": ("n",),
    "p": ("p",),
    "q": ("k",),
    "r": ("r",),
    "s": ("s",),
    "t": ("t",),
    "v": ("v",),
    "w": ("w",),
    "x": ("k", "s"),
    "z": ("z",),
}
_MAX_GRAPHEME = max(len(g) for g in GRAPHEME_TO_IPA)


def tokenize(text: str) -> List[str]:
    return WORD_RE.findall((text or "").lower())


def word_to_phonemes(word: str) -> List[str]:
    """Approximate IPA phonemes for a lower-case word (no dictionary lookup)."""
    phonemes: List[str] = []
    i = 0
    while i < len(word):
        if i == 0 and word[0] == "y" and len(word) > 1:
            phonemes.append("j")
            i += 1
            continue
        for size in range(min(_MAX_GRAPHEME, len(word) - i), 0, -1):
            chunk = word[i: i + size]
            if chunk in GRAPHEME_TO_IPA:
                phonemes.extend(GRAPHEME_TO_IPA[chunk])
                i += size
                break
        else:
            # apostrophes and anything outside the table
            i += 1
    return phonemes


def predict_word_stress(word: str) -> List[int]:
    if len(word) <= 2:
        return [1]
    if len(word) <= 4:
        return [1, 0]
    return [1, 0, 0]


class PhoneticSegmenter:
    """Splits the recording evenly across the expected words."""

    def segment(self, features: AcousticFeatures, text: str) -> List[PhoneticSegment]:
        words = tokenize(text)
        if not words:
            return []

        duration = max(0.0, float(features.temporal.duration))
        n = len(words)
        envelope = np.asarray(features.energy.envelope, dtype=np.float64)
        pitch = np.asarray(features.fundamental.series, dtype=np.float64)
        pitch_hop = PITCH_WINDOW_S / 2.0

        segments: List[PhoneticSegment] = []
        for i, word in enumerate(words):
            start = i / n * duration
            end = (i + 1) / n * duration
            local = self._local_features(features, envelope, pitch, pitch_hop, start, end)
            segments.append(
                PhoneticSegment(
                    word=word,
                    phonemes=word_to_phonemes(word),
                    start_time=start,
                    end_time=end,
                    predicted_stress=predict_word_stress(word),
                    local_features=local,
                )
            )
        logger.debug("Segmented %d words over %.2fs", n, duration)
        return segments

    @staticmethod
    def _local_features(
        features: AcousticFeatures,
        envelope: np.ndarray,
        pitch: np.ndarray,
        pitch_hop: float,
        start: float,
        end: float,
    ) -> LocalFeatures:
        lo = int(start / SILENCE_WINDOW_S)
        hi = max(lo + 1, int(end / SILENCE_WINDOW_S))
        env_slice = envelope[lo:hi]
        energy = float(env_slice.mean()) if env_slice.size else 0.0
        peak = float(env_slice.max()) if env_slice.size else 0.0

        p_lo = int(start / pitch_hop)
        p_hi = max(p_lo + 1, int(end / pitch_hop))
        p_slice = pitch[p_lo:p_hi]
        voiced = p_slice[p_slice > 0]
        local_pitch = float(voiced.mean()) if voiced.size else float(features.fundamental.mean)

        return LocalFeatures(
            energy=energy,
            peak=peak,
            pitch=local_pitch,
            f1=float(features.formants.F1),
            f2=float(features.formants.F2),
            f3=float(features.formants.F3),
            clarity=float(features.spectral.clarity),
            high_band_ratio=float(features.spectral.high_band_ratio),
        )
