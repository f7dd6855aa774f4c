# tests/conftest.py
import os
import tempfile
import importlib

import pytest
from fastapi.testclient import TestClient

from cefr_speech.db import DatabaseManager


@pytest.fixture()
def fixed_now_ms():
    # 2025-10-20 15:30:00 UTC
    return 1760974200000


@pytest.fixture()
def db(tmp_path):
    manager = DatabaseManager(str(tmp_path / "test.sqlite3"))
    manager.initialize()
    return manager


@pytest.fixture()
def app_client(monkeypatch):
    import api
    importlib.reload(api)

    # DB temporário
    tmp_db = tempfile.NamedTemporaryFile(delete=False)
    tmp_db.close()
    monkeypatch.setattr(api, "DB", tmp_db.name, raising=True)

    api.init_db()
    client = TestClient(api.app)

    yield client

    os.unlink(tmp_db.name)
