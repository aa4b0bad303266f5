import time
from pathlib import Path

import pytest

from eventstream.storage import db


@pytest.fixture(autouse=True)
def tmp_db(tmp_path, monkeypatch) -> Path:
    """Every test gets its own sqlite file."""
    path = tmp_path / "events.db"
    monkeypatch.setattr(db, "DB_PATH", path)
    db.init_db()
    return path


def wait_until(predicate, timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
