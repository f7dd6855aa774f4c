"""
Phonetic analysis pipeline.

decode -> features -> segments -> {segmental, suprasegmental} -> feedback.
Each call is independent; nothing is cached between analyses.
"""

import asyncio
import logging
from typing import Optional, Tuple

from cefr_speech.config import (
    PITCH_WINDOW_S,
    RECOGNITION_MIN_CONFIDENCE,
    SEGMENTAL_WEIGHT,
    SUPRASEGMENTAL_WEIGHT,
)
from cefr_speech.models.audio_sample import AudioSample
from cefr_speech.schemas import (
    AttemptOut,
    FeedbackBundle,
    IntonationResult,
    PhonemeClassResult,
    PhoneticAnalysisResult,
    RecognitionResult,
    RhythmResult,
    SegmentalResult,
    StressResult,
    SuprasegmentalResult,
)
from cefr_speech.services.audio_service import AudioService, DecodeError
from cefr_speech.services.composite_scoring import CompositeScoringEngine
from cefr_speech.services.feature_extractor import FeatureExtractor, rms_to_db
from cefr_speech.services.feedback import FeedbackSynthesizer
from cefr_speech.services.segmental_scorer import SegmentalScorer
from cefr_speech.services.segmenter import PhoneticSegmenter
from cefr_speech.services.suprasegmental_scorer import SuprasegmentalScorer
from cefr_speech.time_utils import now_ms

logger = logging.getLogger(__name__)


class SilenceDetected(Exception):
    """The recording carries no speech; the attempt should be retried."""

    def __init__(self, rms: float, db: float):
        self.rms = rms
        self.db = db
        super().__init__(f"No speech detected (rms={rms:.6f}, {db:.1f} dB)")


class AnalysisUnavailable(Exception):
    pass


class PhoneticAnalysisService:
    def __init__(
        self,
        audio_service: Optional[AudioService] = None,
        extractor: Optional[FeatureExtractor] = None,
        segmenter: Optional[PhoneticSegmenter] = None,
        segmental: Optional[SegmentalScorer] = None,
        suprasegmental: Optional[SuprasegmentalScorer] = None,
        feedback: Optional[FeedbackSynthesizer] = None,
        composite: Optional[CompositeScoringEngine] = None,
    ):
        self.audio_service = audio_service or AudioService()
        self.extractor = extractor or FeatureExtractor(self.audio_service)
        self.segmenter = segmenter or PhoneticSegmenter()
        self.segmental = segmental or SegmentalScorer()
        self.suprasegmental = suprasegmental or SuprasegmentalScorer(self.segmenter)
        self.feedback = feedback or FeedbackSynthesizer()
        self.composite = composite or CompositeScoringEngine()

    # ------------------------
    # Analysis
    # ------------------------
    def analyze(self, audio_bytes: bytes, text: str, level: str) -> PhoneticAnalysisResult:
        return self._analyze(audio_bytes, text, level)[0]

    async def analyze_async(self, audio_bytes: bytes, text: str, level: str) -> PhoneticAnalysisResult:
        return (await self._analyze_async(audio_bytes, text, level))[0]

    def _analyze(self, audio_bytes: bytes, text: str, level: str) -> Tuple[PhoneticAnalysisResult, float]:
        if not audio_bytes:
            raise AnalysisUnavailable("No audio buffer to analyze")
        try:
            sample = self.audio_service.decode(audio_bytes)
        except DecodeError as e:
            logger.warning("Audio decode failed, using basic analysis: %s", e)
            return self.basic_analysis(text, level), 0.0
        return self._analyze_sample(sample, text, level), sample.duration

    async def _analyze_async(
        self, audio_bytes: bytes, text: str, level: str
    ) -> Tuple[PhoneticAnalysisResult, float]:
        if not audio_bytes:
            raise AnalysisUnavailable("No audio buffer to analyze")
        try:
            sample = await self.audio_service.decode_async(audio_bytes)
        except DecodeError as e:
            logger.warning("Audio decode failed, using basic analysis: %s", e)
            return self.basic_analysis(text, level), 0.0
        result = await asyncio.to_thread(self._analyze_sample, sample, text, level)
        return result, sample.duration

    def _analyze_sample(self, sample: AudioSample, text: str, level: str) -> PhoneticAnalysisResult:
        if sample.sample_rate <= 0 or len(sample.samples) < int(round(PITCH_WINDOW_S * sample.sample_rate)):
            raise AnalysisUnavailable(
                f"No usable audio buffer ({len(sample.samples)} samples @ {sample.sample_rate} Hz)"
            )
        features = self.extractor.extract(sample)
        if self.extractor.is_silent(features):
            rms = features.energy.rms
            raise SilenceDetected(rms, rms_to_db(rms))

        try:
            segments = self.segmenter.segment(features, text)
            segmental = self.segmental.score(segments, level)
            suprasegmental = self.suprasegmental.score(features, text, level, segments)
            feedback = self.feedback.synthesize(segmental, suprasegmental, level)
        except (ArithmeticError, ValueError) as e:
            logger.warning("Scoring failed, using basic analysis: %s", e)
            return self.basic_analysis(text, level)

        overall = (
            segmental.overall_percent / 100 * SEGMENTAL_WEIGHT
            + suprasegmental.overall_percent / 100 * SUPRASEGMENTAL_WEIGHT
        )
        return PhoneticAnalysisResult(
            overall=max(0.0, min(1.0, overall)),
            segmental=segmental,
            suprasegmental=suprasegmental,
            feedback=feedback,
            level=level,
            text=text,
            timestamp=now_ms(),
            is_basic_analysis=False,
        )

    @staticmethod
    def basic_analysis(text: str, level: str) -> PhoneticAnalysisResult:
        """Fixed safe defaults returned whenever real analysis is not possible."""
        return PhoneticAnalysisResult(
            overall=0.75,
            segmental=SegmentalResult(
                vowels=PhonemeClassResult(count=5, accuracy=0.75),
                consonants=PhonemeClassResult(count=8, accuracy=0.76),
                overall_percent=75.5,
            ),
            suprasegmental=SuprasegmentalResult(
                stress=StressResult(accuracy=0.7),
                rhythm=RhythmResult(accuracy=0.75, flow=0.75),
                intonation=IntonationResult(accuracy=0.73, expressiveness=0.73),
                overall_percent=72.7,
            ),
            feedback=FeedbackBundle(
                strengths=["Basic pronunciation is understandable"],
                improvements=["Continue practicing for more detailed feedback"],
                specific_tips=["Record in a quiet environment for better analysis"],
                level_appropriate=["Keep practicing at your current level"],
            ),
            level=level,
            text=text,
            timestamp=now_ms(),
            is_basic_analysis=True,
        )

    # ------------------------
    # Analysis + composite score
    # ------------------------
    def assess(
        self,
        audio_bytes: bytes,
        text: str,
        level: str,
        ideal_duration: float,
        recognition: Optional[RecognitionResult] = None,
        duration: Optional[float] = None,
    ) -> AttemptOut:
        analysis, measured = self._analyze(audio_bytes, text, level)
        return self._score_attempt(analysis, measured if duration is None else duration, text, ideal_duration, recognition)

    async def assess_async(
        self,
        audio_bytes: bytes,
        text: str,
        level: str,
        ideal_duration: float,
        recognition: Optional[RecognitionResult] = None,
        duration: Optional[float] = None,
    ) -> AttemptOut:
        analysis, measured = await self._analyze_async(audio_bytes, text, level)
        return self._score_attempt(analysis, measured if duration is None else duration, text, ideal_duration, recognition)

    @staticmethod
    def trusts(recognition: RecognitionResult) -> bool:
        """A recognition without a confidence is taken at face value."""
        return recognition.confidence is None or recognition.confidence >= RECOGNITION_MIN_CONFIDENCE

    def _score_attempt(
        self,
        analysis: PhoneticAnalysisResult,
        duration: float,
        text: str,
        ideal_duration: float,
        recognition: Optional[RecognitionResult],
    ) -> AttemptOut:
        if recognition is not None and not self.trusts(recognition):
            logger.info("Recognition confidence %.2f too low, scoring offline", recognition.confidence)
            recognition = None
        if recognition is not None:
            score = self.composite.score(
                recognition.accuracy,
                duration,
                ideal_duration,
                transcription=recognition.transcription,
                expected_text=text,
                is_offline=False,
            )
        else:
            # No usable recognizer: acoustic overall stands in for recognition accuracy.
            score = self.composite.score(
                analysis.overall,
                duration,
                ideal_duration,
                transcription=text,
                expected_text=text,
                is_offline=True,
            )
        return AttemptOut(
            id=None,
            analysis=analysis,
            score=score,
            grade_info=self.composite.grade_info(score.grade),
            feedback=self.composite.detailed_feedback(score),
            duration=duration,
            is_offline=recognition is None,
        )
