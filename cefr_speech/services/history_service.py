"""Attempt history built on top of ResultRepository."""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Dict, List, Union
from uuid import uuid4

from fastapi import HTTPException
from pydantic import ValidationError

from cefr_speech.cefr_data import LEVELS
from cefr_speech.config import HISTORY_MAX_RESULTS
from cefr_speech.repositories import ResultRepository
from cefr_speech.schemas import HistoryImport, HistoryRecord, ProgressOut
from cefr_speech.time_utils import iso_from_ms, now_ms, utc_now

logger = logging.getLogger(__name__)

GOOD_PERFORMANCE = 70
EXPORT_VERSION = "1.0"


def _row_to_record(row: sqlite3.Row) -> HistoryRecord:
    return HistoryRecord(
        id=row["id"],
        timestamp=row["timestamp"],
        date=iso_from_ms(row["timestamp"]),
        level=row["level"],
        sentence=row["sentence"],
        scores=json.loads(row["scores"]),
        grade=row["grade"],
        duration=row["duration"],
        ideal_duration=row["ideal_duration"],
        is_offline=bool(row["is_offline"]),
    )


def _composite(record: HistoryRecord) -> int:
    return int(record.scores.get("composite", 0))


def current_level(history: List[HistoryRecord]) -> str:
    """Highest level with at least two good scores among the last five attempts."""
    counts: Dict[str, int] = {}
    for record in history[:5]:
        if _composite(record) >= GOOD_PERFORMANCE:
            counts[record.level] = counts.get(record.level, 0) + 1
    for level in reversed(LEVELS):
        if counts.get(level, 0) >= 2:
            return level
    return "A1"


class HistoryService:
    """Persisted per-attempt results, newest first, capped at ``max_results``."""

    def __init__(self, repo: ResultRepository, max_results: int = HISTORY_MAX_RESULTS):
        self._repo = repo
        self._max_results = max_results

    def save(self, record: Dict[str, Any]) -> str:
        """Persist one attempt and return its id; evicts the oldest beyond the cap."""
        record_id = uuid4().hex
        payload = {
            "id": record_id,
            "timestamp": now_ms(),
            "level": record["level"],
            "sentence": record["sentence"],
            "scores": record["scores"],
            "grade": record["grade"],
            "duration": record.get("duration", 0.0),
            "ideal_duration": record.get("ideal_duration", 0.0),
            "is_offline": record.get("is_offline", False),
        }
        with self._repo.transaction() as conn:
            self._repo.insert(payload, conn=conn)
            evicted = self._repo.trim(self._max_results, conn=conn)
        if evicted:
            logger.debug("History cap reached, evicted %d result(s)", evicted)
        return record_id

    def history(self) -> List[HistoryRecord]:
        return [_row_to_record(row) for row in self._repo.list_all()]

    def recent(self, count: int = 10) -> List[HistoryRecord]:
        return [_row_to_record(row) for row in self._repo.list_recent(count)]

    def by_level(self, level: str) -> List[HistoryRecord]:
        return [_row_to_record(row) for row in self._repo.list_by_level(level)]

    def progress(self) -> ProgressOut:
        history = self.history()
        if not history:
            raise HTTPException(status_code=404, detail="No test history yet")

        by_level: Dict[str, List[int]] = {}
        for record in history:
            by_level.setdefault(record.level, []).append(_composite(record))

        recent = history[:10]
        older = history[10:20]
        recent_avg = sum(_composite(r) for r in recent) / len(recent)
        older_avg = sum(_composite(r) for r in older) / len(older) if older else 0.0

        return ProgressOut(
            total_tests=len(history),
            average_score=recent_avg,
            improvement=recent_avg - older_avg,
            by_level=by_level,
            recent_results=recent,
            best_score=max(_composite(r) for r in history),
            current_level=current_level(history),
        )

    def export(self) -> str:
        data = {
            "test_history": [r.model_dump() for r in self.history()],
            "export_date": utc_now().isoformat(),
            "version": EXPORT_VERSION,
        }
        return json.dumps(data, indent=2, ensure_ascii=False)

    def import_(self, data: Union[str, Dict[str, Any], HistoryImport]) -> int:
        """Replace the stored history with an exported payload; returns the row count."""
        try:
            if isinstance(data, HistoryImport):
                payload = data
            elif isinstance(data, str):
                payload = HistoryImport.model_validate_json(data)
            else:
                payload = HistoryImport.model_validate(data)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid history data: {e.errors()[0]['msg']}")

        records = payload.test_history[: self._max_results]
        try:
            with self._repo.transaction() as conn:
                self._repo.delete_all(conn=conn)
                # stored oldest first so that newest keeps the highest sequence
                for record in reversed(records):
                    self._repo.insert(record.model_dump(), conn=conn)
        except sqlite3.IntegrityError as e:
            raise HTTPException(status_code=400, detail=f"Invalid history data: {e}")
        logger.info("Imported %d history record(s)", len(records))
        return len(records)

    def clear(self) -> int:
        return self._repo.delete_all()

