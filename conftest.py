import pytest

from config import settings
from library import Library
from room import Room
from store import SQLiteStore


@pytest.fixture
def store(tmp_path, request):
    # A fresh database file for every test
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    return SQLiteStore(db_file=db_file, seed=False)


@pytest.fixture
def lib(store):
    lib = Library(store=store)
    yield lib
    lib.close()


@pytest.fixture
def room(lib):
    return lib.add_room(Room(
        id=None,
        name="Quiet Study Room A",
        capacity=4,
        location="2nd Floor, East Wing",
        description="A quiet room for focused study.",
        amenities=["wifi", "whiteboard"],
    ))


@pytest.fixture
def prefs_path(tmp_path, monkeypatch):
    path = tmp_path / "preferences.json"
    monkeypatch.setattr(settings, "preferences_file", str(path))
    return path
