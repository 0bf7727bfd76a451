import os

import pytest

# QPdfWriter needs a GUI application; tests never have a display.
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from billnest.data import database  # noqa: E402


@pytest.fixture(autouse=True)
def storage(tmp_path, monkeypatch):
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path))
    database.initialize()
    return database.get_storage_root()
