#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
CEFR Speech – FastAPI pronunciation assessment
----------------------------------------------

• Analysis: autocorrelation pitch, FFT spectrum, formant peak-picking, silence detection
• Scoring: per-phoneme accuracy, stress/rhythm/intonation, composite CEFR grade
• Storage: SQLite (result history capped at HISTORY_MAX_RESULTS, placement records)
• Timezone: UTC (timestamps stored as epoch milliseconds)

Endpoints (Analysis):
  - GET    /health                         → liveness
  - GET    /levels                         → CEFR levels, sentences and grade thresholds
  - POST   /analyze                        → phonetic analysis of a base64 recording
  - POST   /features                       → raw acoustic features (visualizers)
  - POST   /score                          → composite score from recognition/duration data
  - POST   /attempts                       → analysis + composite score, saved to history

Endpoints (History):
  - GET    /history?level=...&limit=...    → saved attempts, newest first
  - GET    /history/progress               → totals, trend and current level
  - GET    /history/export                 → JSON export (version 1.0)
  - POST   /history/import                 → replace history with an export
  - DELETE /history                        → clear history

Endpoints (Placement):
  - POST   /placement                      → start an adaptive placement test
  - GET    /placement/{id}                 → current sentence to read
  - POST   /placement/{id}/results         → record a composite score, get the next step
  - GET    /placement/{id}/summary         → final placement summary
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from fastapi.middleware.cors import CORSMiddleware

from cefr_speech import config
from cefr_speech.cefr_data import CEFR_LEVELS, GRADE_THRESHOLDS, SCORING_WEIGHTS
from cefr_speech.db import db_manager
from cefr_speech.repositories import AssessmentRepository, ResultRepository
from cefr_speech.schemas import (
    AcousticFeatures,
    AnalyzeRequest,
    AttemptOut,
    AttemptRequest,
    CompositeScore,
    HistoryImport,
    HistoryRecord,
    PhoneticAnalysisResult,
    PlacementAssessment,
    PlacementDecision,
    PlacementResultIn,
    PlacementSummary,
    PlacementTestInfo,
    ProgressOut,
    ScoreRequest,
)
from cefr_speech.services.audio_service import DecodeError
from cefr_speech.services.composite_scoring import CompositeScoringEngine
from cefr_speech.services.history_service import HistoryService
from cefr_speech.services.phonetic_analysis import (
    AnalysisUnavailable,
    PhoneticAnalysisService,
    SilenceDetected,
)
from cefr_speech.services.placement_service import PlacementService
from cefr_speech.utils.b64 import b64_to_audio_bytes

# ---------------------------------
# Configuration
# ---------------------------------
DB = config.DB_PATH

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)


def init_db() -> None:
    """Initialize database schema using the current database path."""
    db_manager.set_path(DB)
    db_manager.initialize()


# ------------------------
# Dependencies
# ------------------------
_analysis_service = PhoneticAnalysisService()


def get_analysis_service() -> PhoneticAnalysisService:
    return _analysis_service


def get_scoring_engine() -> CompositeScoringEngine:
    return _analysis_service.composite


def get_result_repository() -> ResultRepository:
    return ResultRepository(db_manager)


def get_assessment_repository() -> AssessmentRepository:
    return AssessmentRepository(db_manager)


def get_history_service(
    repo: ResultRepository = Depends(get_result_repository),
) -> HistoryService:
    return HistoryService(repo)


def get_placement_service(
    repo: AssessmentRepository = Depends(get_assessment_repository),
) -> PlacementService:
    return PlacementService(repo)


# ---------------
# FastAPI (app)
# ---------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan hook: ensure database is initialized before serving requests."""
    init_db()
    yield


app = FastAPI(
    title="CEFR Speech API",
    version="1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _silence_error(exc: SilenceDetected) -> HTTPException:
    logger.info("Silent recording rejected (%.1f dB)", exc.db)
    return HTTPException(status_code=422, detail="No speech detected, please retry")


# ------------------------
# Endpoints – Analysis
# ------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/levels")
def list_levels() -> Dict[str, Any]:
    """CEFR reference data used by clients to pick sentences."""
    return {
        "levels": CEFR_LEVELS,
        "grade_thresholds": dict(GRADE_THRESHOLDS),
        "scoring_weights": SCORING_WEIGHTS,
    }


@app.post("/analyze", response_model=PhoneticAnalysisResult)
async def analyze(
    req: AnalyzeRequest,
    service: PhoneticAnalysisService = Depends(get_analysis_service),
):
    """Full phonetic analysis; falls back to a basic analysis when the audio cannot be decoded."""
    audio = b64_to_audio_bytes(req.audio_b64)
    try:
        return await service.analyze_async(audio, req.expected_text, req.level)
    except SilenceDetected as exc:
        raise _silence_error(exc)
    except AnalysisUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error during phonetic analysis")
        raise HTTPException(status_code=500, detail="Internal error while analyzing audio") from exc


@app.post("/features", response_model=AcousticFeatures)
async def features(
    req: AnalyzeRequest,
    service: PhoneticAnalysisService = Depends(get_analysis_service),
):
    """Acoustic features for visualization; undecodable audio yields all-zero features."""
    audio = b64_to_audio_bytes(req.audio_b64)
    try:
        sample = await service.audio_service.decode_async(audio)
    except DecodeError as exc:
        logger.warning("Could not decode audio for feature extraction: %s", exc)
        return AcousticFeatures.empty()
    return await asyncio.to_thread(service.extractor.extract, sample)


@app.post("/score", response_model=CompositeScore)
def score(
    req: ScoreRequest,
    engine: CompositeScoringEngine = Depends(get_scoring_engine),
):
    return engine.score(
        req.recognition_accuracy,
        req.duration,
        req.ideal_duration,
        transcription=req.transcription,
        expected_text=req.expected_text,
        is_offline=req.is_offline,
    )


@app.post("/attempts", response_model=AttemptOut, status_code=201)
async def create_attempt(
    req: AttemptRequest,
    service: PhoneticAnalysisService = Depends(get_analysis_service),
    history: HistoryService = Depends(get_history_service),
):
    """Analyze and score one reading attempt, then persist it to the history."""
    audio = b64_to_audio_bytes(req.audio_b64)
    try:
        attempt = await service.assess_async(
            audio,
            req.expected_text,
            req.level,
            req.ideal_duration,
            recognition=req.recognition,
        )
    except SilenceDetected as exc:
        raise _silence_error(exc)
    except AnalysisUnavailable as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error while assessing attempt")
        raise HTTPException(status_code=500, detail="Internal error while analyzing audio") from exc

    record_id = await asyncio.to_thread(
        history.save,
        {
            "level": req.level,
            "sentence": req.expected_text,
            "scores": attempt.score.model_dump(),
            "grade": attempt.score.grade,
            "duration": attempt.duration,
            "ideal_duration": req.ideal_duration,
            "is_offline": attempt.is_offline,
        },
    )
    return attempt.model_copy(update={"id": record_id})


# ------------------------
# Endpoints – History
# ------------------------
@app.get("/history", response_model=List[HistoryRecord])
def list_history(
    level: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=config.HISTORY_MAX_RESULTS),
    history: HistoryService = Depends(get_history_service),
):
    if level:
        records = history.by_level(level.strip().upper())
        return records[:limit] if limit else records
    if limit:
        return history.recent(limit)
    return history.history()


@app.get("/history/progress", response_model=ProgressOut)
def history_progress(history: HistoryService = Depends(get_history_service)):
    return history.progress()


@app.get("/history/export")
def export_history(history: HistoryService = Depends(get_history_service)):
    return Response(content=history.export(), media_type="application/json")


@app.post("/history/import")
def import_history(
    payload: HistoryImport,
    history: HistoryService = Depends(get_history_service),
):
    return {"imported": history.import_(payload)}


@app.delete("/history", status_code=204)
def clear_history(history: HistoryService = Depends(get_history_service)):
    history.clear()
    return


# ------------------------
# Endpoints – Placement
# ------------------------
@app.post("/placement", response_model=PlacementAssessment, status_code=201)
def start_placement(placement: PlacementService = Depends(get_placement_service)):
    return placement.start()


@app.get("/placement/{assessment_id}", response_model=PlacementTestInfo)
def current_placement_test(
    assessment_id: str,
    placement: PlacementService = Depends(get_placement_service),
):
    return placement.current_test(assessment_id)


@app.post("/placement/{assessment_id}/results", response_model=PlacementDecision)
def record_placement_result(
    assessment_id: str,
    payload: PlacementResultIn,
    placement: PlacementService = Depends(get_placement_service),
):
    return placement.process_result(assessment_id, payload.composite, expected_version=payload.version)


@app.get("/placement/{assessment_id}/summary", response_model=PlacementSummary)
def placement_summary(
    assessment_id: str,
    placement: PlacementService = Depends(get_placement_service),
):
    return placement.summary(assessment_id)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api:app", host=config.API_HOST, port=config.API_PORT, reload=config.API_RELOAD)
