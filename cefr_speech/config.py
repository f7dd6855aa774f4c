"""Application configuration constants."""

from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()

from datetime import timezone
from pathlib import Path
from typing import List

BASE_DIR = Path(__file__).resolve().parent.parent
TIMEZONE = timezone.utc

# Database
DB_NAME = os.getenv("DB_NAME", "cefr_speech.sqlite3")
DB_PATH = str(BASE_DIR / DB_NAME)

# Storage collaborator
HISTORY_MAX_RESULTS: int = int(os.getenv("HISTORY_MAX_RESULTS", "50"))

# CORS
CORS_ORIGINS: List[str] = os.getenv("CORS_ORIGINS", "*").split(",")

# API Server
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))
API_RELOAD = os.getenv("API_RELOAD", "False").lower() in ("true", "1", "yes")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Audio decoding (the only I/O boundary of the pipeline)
DECODE_TIMEOUT_S: float = float(os.getenv("DECODE_TIMEOUT_S", "10"))
FFMPEG_TARGET_SR: int = 16000

# ---------------------------------
# Energy / silence
# ---------------------------------
SPEECH_RMS_THRESHOLD: float = 0.0001
SILENCE_DB_THRESHOLD: float = -45.0
SILENCE_RMS_THRESHOLD: float = 0.001
SILENCE_WINDOW_S: float = 0.010
SILENCE_FRAME_RMS_THRESHOLD: float = 0.01

# ---------------------------------
# Pitch (autocorrelation)
# ---------------------------------
PITCH_WINDOW_S: float = 0.050
PITCH_MIN_HZ: float = 50.0
PITCH_MAX_HZ: float = 500.0
PITCH_CORRELATION_FLOOR: float = 0.3
PITCH_PEAK_TOLERANCE: float = 0.95
PITCH_MIN_OVERLAP_FRACTION: float = 0.125
VOICING_WINDOW_S: float = 0.020
VOICED_MIN_HZ: float = 50.0
VOICED_MAX_HZ: float = 400.0

# ---------------------------------
# Formants / spectrum
# ---------------------------------
FORMANT_WINDOW_S: float = 0.025
FORMANT_MIN_HZ: float = 80.0
FORMANT_MAX_HZ: float = 4000.0
FORMANT_PEAK_FLOOR: float = 0.01
FORMANT_COUNT: int = 3
ROLLOFF_FRACTION: float = 0.85
FRICATIVE_BAND_HZ: float = 2000.0

# ---------------------------------
# Segmental scoring
# ---------------------------------
BASE_ACCURACY: float = 0.5
LOW_ENERGY_THRESHOLD: float = 0.01
HIGH_ENERGY_THRESHOLD: float = 0.05
ENERGY_PENALTY: float = 0.15
ENERGY_BONUS: float = 0.1
CLARITY_WEIGHT: float = 0.2
FORMANT_WEIGHT: float = 0.3
CONSONANT_CUE_WEIGHT: float = 0.2
FRICATIVE_HIGH_BAND_TARGET: float = 0.5
STOP_BURST_THRESHOLD: float = 0.05
LEVEL_ERROR_PENALTY: float = 0.1
LOW_ACCURACY_THRESHOLD: float = 0.7

# ---------------------------------
# Suprasegmental scoring
# ---------------------------------
SECONDS_PER_SYLLABLE: float = 0.2
STRESS_SCALE_MIN: float = 0.4
STRESS_SCALE_MAX: float = 1.2
FLOW_CV_LIMIT: float = 1.5
FLOW_MIN: float = 0.5
CONTOUR_MATCH_SCORE: float = 0.9
CONTOUR_MISMATCH_SCORE: float = 0.6
EXPRESSIVENESS_BASE: float = 0.7
EXPRESSIVE_RANGE_TARGET: float = 0.5

# Analysis-level fusion
SEGMENTAL_WEIGHT: float = 0.7
SUPRASEGMENTAL_WEIGHT: float = 0.3

# Feedback
STRENGTH_THRESHOLD: float = 0.8
IMPROVEMENT_THRESHOLD: float = 0.7

# Composite scoring
OFFLINE_CLARITY: float = 0.7
MISSING_COMPLETENESS: float = 0.5
MIN_FLUENCY: float = 0.1
# Recognitions below this confidence are scored as offline attempts
RECOGNITION_MIN_CONFIDENCE: float = 0.7

# Placement policy
PLACEMENT_ADVANCEMENT: float = 75.0
PLACEMENT_MASTERY: float = 85.0
PLACEMENT_STRUGGLE: float = 60.0
PLACEMENT_MIN_ATTEMPTS: int = 3
PLACEMENT_MAX_ATTEMPTS: int = 5
PLACEMENT_VALID_HOURS: int = 24
