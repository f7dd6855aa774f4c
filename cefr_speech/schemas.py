"""Pydantic schemas for analysis records, request and response payloads."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Literal

from pydantic import BaseModel, Field, field_validator

CefrLevel = Literal["A1", "A2", "B1", "B2", "C1", "C2"]


def _normalize_level(level: str) -> str:
    return (level or "").strip().upper()


# ------------------------
# Acoustic features
# ------------------------
class FundamentalFeatures(BaseModel):
    mean: float = 0.0
    range: float = 0.0
    series: List[float] = Field(default_factory=list)


class FormantFeatures(BaseModel):
    F1: float = 0.0
    F2: float = 0.0
    F3: float = 0.0


class SpectralFeatures(BaseModel):
    centroid: float = 0.0
    bandwidth: float = 0.0
    rolloff: float = 0.0
    clarity: float = 0.0
    high_band_ratio: float = 0.0


class TemporalFeatures(BaseModel):
    duration: float = 0.0
    silence_count: int = 0
    voiced_ratio: float = 0.0


class EnergyFeatures(BaseModel):
    rms: float = 0.0
    peak: float = 0.0
    envelope: List[float] = Field(default_factory=list)


class AcousticFeatures(BaseModel):
    fundamental: FundamentalFeatures = Field(default_factory=FundamentalFeatures)
    formants: FormantFeatures = Field(default_factory=FormantFeatures)
    spectral: SpectralFeatures = Field(default_factory=SpectralFeatures)
    temporal: TemporalFeatures = Field(default_factory=TemporalFeatures)
    energy: EnergyFeatures = Field(default_factory=EnergyFeatures)
    has_speech: bool = False

    @classmethod
    def empty(cls) -> "AcousticFeatures":
        """All-zero features used for degenerate buffers."""
        return cls()


# ------------------------
# Segmental analysis
# ------------------------
class PhonemeScore(BaseModel):
    phoneme: str
    accuracy: float = Field(..., ge=0.0, le=1.0)
    target: str
    produced: str
    issues: List[str] = Field(default_factory=list)
    feedback: str = ""


class PhonemeClassResult(BaseModel):
    count: int = 0
    accuracy: float = 0.0
    issues: List[str] = Field(default_factory=list)
    details: List[PhonemeScore] = Field(default_factory=list)


class SegmentalResult(BaseModel):
    vowels: PhonemeClassResult
    consonants: PhonemeClassResult
    overall_percent: float


# ------------------------
# Suprasegmental analysis
# ------------------------
class StressPattern(BaseModel):
    word: str
    expected: List[float]
    detected: List[float]
    correct: bool


class StressResult(BaseModel):
    accuracy: float
    patterns: List[StressPattern] = Field(default_factory=list)
    issues: List[str] = Field(default_factory=list)


class RhythmTiming(BaseModel):
    expected: float = 0.0
    actual: float = 0.0
    ratio: float = 0.0


class RhythmResult(BaseModel):
    accuracy: float
    timing: Optional[RhythmTiming] = None
    flow: float
    issues: List[str] = Field(default_factory=list)


class IntonationContour(BaseModel):
    expected: str
    detected: str
    match: bool


class IntonationResult(BaseModel):
    accuracy: float
    contour: Optional[IntonationContour] = None
    expressiveness: float
    issues: List[str] = Field(default_factory=list)


class SuprasegmentalResult(BaseModel):
    stress: StressResult
    rhythm: RhythmResult
    intonation: IntonationResult
    overall_percent: float


# ------------------------
# Feedback / full analysis
# ------------------------
class FeedbackBundle(BaseModel):
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    specific_tips: List[str] = Field(default_factory=list)
    level_appropriate: List[str] = Field(default_factory=list)


class PhoneticAnalysisResult(BaseModel):
    overall: float = Field(..., ge=0.0, le=1.0)
    segmental: SegmentalResult
    suprasegmental: SuprasegmentalResult
    feedback: FeedbackBundle
    level: CefrLevel
    text: str
    timestamp: int
    is_basic_analysis: bool = False


# ------------------------
# Composite score
# ------------------------
class IndividualScores(BaseModel):
    pronunciation: float
    fluency: float
    completeness: float
    clarity: float


class CompositeScore(BaseModel):
    individual: IndividualScores
    composite: int = Field(..., ge=0, le=100)
    grade: CefrLevel


class GradeInfo(BaseModel):
    name: str
    color: str
    description: str


# ------------------------
# Requests
# ------------------------
class RecognitionResult(BaseModel):
    """Output of the external transcription collaborator (absent offline)."""
    accuracy: float = Field(..., ge=0.0, le=1.0)
    transcription: str = ""
    confidence: Optional[float] = Field(None, ge=0.0, le=1.0)


class AnalyzeRequest(BaseModel):
    audio_b64: str = Field(..., description="Base64 audio (a data URL is accepted)")
    expected_text: str = Field(..., min_length=1)
    level: CefrLevel = "A1"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: str) -> str:
        return _normalize_level(value)


class ScoreRequest(BaseModel):
    recognition_accuracy: Optional[float] = None
    duration: Optional[float] = None
    ideal_duration: Optional[float] = None
    transcription: Optional[str] = None
    expected_text: Optional[str] = None
    is_offline: bool = False


class AttemptRequest(AnalyzeRequest):
    ideal_duration: float = Field(..., gt=0)
    recognition: Optional[RecognitionResult] = None


class AttemptOut(BaseModel):
    id: Optional[str]
    analysis: PhoneticAnalysisResult
    score: CompositeScore
    grade_info: GradeInfo
    feedback: List[str]
    duration: float
    is_offline: bool


# ------------------------
# History (storage collaborator)
# ------------------------
class HistoryRecord(BaseModel):
    id: str
    timestamp: int
    date: str
    level: CefrLevel
    sentence: str
    scores: Dict[str, Any]
    grade: CefrLevel
    duration: float
    ideal_duration: float
    is_offline: bool = False


class ProgressOut(BaseModel):
    total_tests: int
    average_score: float
    improvement: float
    by_level: Dict[str, List[int]]
    recent_results: List[HistoryRecord]
    best_score: int
    current_level: CefrLevel


class HistoryImport(BaseModel):
    test_history: List[HistoryRecord]
    export_date: Optional[str] = None
    version: str = "1.0"


# ------------------------
# Placement (progression collaborator)
# ------------------------
class PlacementEvent(BaseModel):
    level: CefrLevel
    sentence_index: int
    score: int
    timestamp: int


class PlacementAssessment(BaseModel):
    id: str
    version: int = 0
    started_at: int
    current_level: CefrLevel = "A1"
    current_sentence_index: int = 0
    level_attempts: Dict[str, int]
    level_scores: Dict[str, List[int]]
    placement_complete: bool = False
    assigned_level: Optional[CefrLevel] = None
    history: List[PlacementEvent] = Field(default_factory=list)


class PlacementResultIn(BaseModel):
    composite: int = Field(..., ge=0, le=100)
    version: Optional[int] = Field(None, description="Expected record version (optimistic check)")


class PlacementDecision(BaseModel):
    action: Literal["advance_level", "next_sentence", "complete_assessment"]
    reason: str
    feedback: Optional[str] = None
    current_level: Optional[CefrLevel] = None
    next_level: Optional[CefrLevel] = None
    assigned_level: Optional[CefrLevel] = None
    average_score: Optional[int] = None
    assessment: Optional[PlacementAssessment] = None


class PlacementTestInfo(BaseModel):
    level: CefrLevel
    sentence_index: int
    sentence: Dict[str, Any]
    attempts_at_level: int
    average_at_level: int
    total_sentences: int


class LevelPerformance(BaseModel):
    attempts: int
    average_score: int
    best_score: int
    consistency: float


class PlacementSummary(BaseModel):
    assessment_id: str
    assigned_level: CefrLevel
    total_attempts: int
    level_performance: Dict[str, LevelPerformance]
    recommendations: List[Dict[str, str]]
