# tests/test_history_service.py
import json

import pytest
from fastapi import HTTPException

from cefr_speech.repositories import ResultRepository
from cefr_speech.services import history_service as history_mod
from cefr_speech.services.history_service import HistoryService, current_level


@pytest.fixture()
def history(db):
    return HistoryService(ResultRepository(db))


def _record(composite=80, level="A1", grade="B2"):
    return {
        "level": level,
        "sentence": "The cat is black",
        "scores": {"individual": {}, "composite": composite, "grade": grade},
        "grade": grade,
        "duration": 3.1,
        "ideal_duration": 3.0,
        "is_offline": True,
    }


def test_save_and_read_back(history):
    record_id = history.save(_record(composite=77))
    saved = history.history()
    assert len(saved) == 1
    assert saved[0].id == record_id
    assert saved[0].scores["composite"] == 77
    assert saved[0].is_offline is True
    assert saved[0].date.startswith("20")


def test_history_is_capped_oldest_first(db):
    history = HistoryService(ResultRepository(db), max_results=50)
    for i in range(55):
        history.save(_record(composite=i))
    records = history.history()
    assert len(records) == 50
    # newest first, the five oldest evicted
    assert records[0].scores["composite"] == 54
    assert records[-1].scores["composite"] == 5


def test_recent_and_by_level(history):
    for level in ["A1", "A2", "A1", "B1"]:
        history.save(_record(level=level))
    assert len(history.recent(2)) == 2
    assert [r.level for r in history.by_level("A1")] == ["A1", "A1"]
    assert history.by_level("C2") == []


def test_progress(history, monkeypatch):
    for composite in [60] * 10 + [80] * 10:
        history.save(_record(composite=composite, level="A2"))
    progress = history.progress()
    assert progress.total_tests == 20
    assert progress.average_score == 80
    assert progress.improvement == 20
    assert progress.best_score == 80
    assert progress.current_level == "A2"
    assert len(progress.recent_results) == 10
    assert progress.by_level["A2"][0] == 80


def test_progress_empty_is_404(history):
    with pytest.raises(HTTPException) as excinfo:
        history.progress()
    assert excinfo.value.status_code == 404


def test_current_level_needs_two_good_recent_scores(history):
    history.save(_record(composite=90, level="C1"))
    history.save(_record(composite=72, level="B1"))
    history.save(_record(composite=75, level="B1"))
    history.save(_record(composite=95, level="C1"))
    assert current_level(history.history()) == "C1"
    assert current_level([]) == "A1"


def test_export_import_roundtrip(history, db):
    history.save(_record(composite=61, level="B1"))
    history.save(_record(composite=88, level="B2"))
    exported = history.export()
    data = json.loads(exported)
    assert data["version"] == "1.0"
    assert [r["scores"]["composite"] for r in data["test_history"]] == [88, 61]

    history.clear()
    assert history.history() == []

    assert history.import_(exported) == 2
    restored = history.history()
    assert [r.scores["composite"] for r in restored] == [88, 61]
    assert [r.id for r in restored] == [r["id"] for r in data["test_history"]]


def test_import_invalid_payload(history):
    history.save(_record())
    with pytest.raises(HTTPException) as excinfo:
        history.import_({"something": []})
    assert excinfo.value.status_code == 400
    assert len(history.history()) == 1


def test_clear(history):
    history.save(_record())
    history.save(_record())
    assert history.clear() == 2
    assert history.history() == []


def test_timestamps_use_clock(history, monkeypatch, fixed_now_ms):
    monkeypatch.setattr(history_mod, "now_ms", lambda: fixed_now_ms)
    history.save(_record())
    saved = history.history()[0]
    assert saved.timestamp == fixed_now_ms
    assert saved.date.startswith("2025-10-20T15:30:00")
