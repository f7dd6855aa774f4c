from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class LocalFeatures:
    energy: float
    peak: float
    pitch: float
    f1: float
    f2: float
    f3: float
    clarity: float
    high_band_ratio: float


@dataclass
class PhoneticSegment:
    word: str
    phonemes: List[str]
    start_time: float
    end_time: float
    predicted_stress: List[int] = field(default_factory=list)
    local_features: Optional[LocalFeatures] = None
