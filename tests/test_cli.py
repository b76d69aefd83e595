import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

import main
from main import app
from store import StorageFailure
from utils.ui_helpers import OUTPUT_MODE_ENV

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_lib(lib, monkeypatch):
    monkeypatch.setattr(main, "get_library", lambda: lib)
    # --output writes the env var; restore it after each test
    monkeypatch.setenv(OUTPUT_MODE_ENV, "plain")
    return lib


def test_calendar_empty_month():
    result = runner.invoke(app, ["calendar", "--month", "2025-05"])
    assert result.exit_code == 0
    assert "No reservations in May 2025." in result.stdout


def test_calendar_lists_busy_days(lib, room):
    lib.create_reservation("user-1", room.id, "room", "Study Room A", "2025-05-30", "2025-06-01")

    result = runner.invoke(app, ["calendar", "--user", "user-1", "--month", "2025-05"])
    assert result.exit_code == 0
    assert "May 2025" in result.stdout
    assert "2025-05-30: Study Room A" in result.stdout
    assert "2025-05-31: Study Room A" in result.stdout
    assert "2025-06-01" not in result.stdout


def test_calendar_more_label(lib, room):
    for title in ("A", "B", "C"):
        lib.create_reservation("user-1", room.id, "room", title, "2025-05-20", "2025-05-20")

    result = runner.invoke(app, ["calendar", "--month", "2025-05"])
    assert "2025-05-20: C, B +1 more" in result.stdout


def test_calendar_json_output(lib, room):
    lib.create_reservation("user-1", room.id, "room", "Study Room A", "2025-05-20", "2025-05-20")

    result = runner.invoke(app, ["--output", "json", "calendar", "--month", "2025-05"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["month"] == "May 2025"
    assert [r["title"] for r in payload["days"]["2025-05-20"]] == ["Study Room A"]
    assert payload["days"]["2025-05-21"] == []


def test_calendar_rejects_bad_month():
    result = runner.invoke(app, ["calendar", "--month", "May"])
    assert result.exit_code == 2
    assert "Use YYYY-MM" in result.stdout


def test_day_detail(lib, room):
    lib.create_reservation("user-1", room.id, "room", "Study Room A", "2025-05-15", "2025-06-01")

    result = runner.invoke(app, ["day", "2025-05-20"])
    assert result.exit_code == 0
    assert "Study Room A (home) May 15, 2025 - Jun 01, 2025 [Pending]" in result.stdout

    empty = runner.invoke(app, ["day", "2025-07-01"])
    assert "No reservations on 2025-07-01." in empty.stdout


def test_rooms(room):
    result = runner.invoke(app, ["rooms"])
    assert result.exit_code == 0
    assert f"{room.id} - Quiet Study Room A (4 seats, 2nd Floor, East Wing)" in result.stdout


def test_rooms_empty():
    result = runner.invoke(app, ["rooms"])
    assert "No rooms." in result.stdout


def test_availability_and_toggle(room):
    result = runner.invoke(app, ["availability", room.id, "2025-06-02"])
    assert result.exit_code == 0
    assert "0. 08:00-10:00 available" in result.stdout
    assert "5. 18:00-20:00 available" in result.stdout

    toggled = runner.invoke(app, ["toggle", room.id, "2025-06-02", "2"])
    assert toggled.exit_code == 0
    assert "12:00-14:00 is now unavailable." in toggled.stdout

    result = runner.invoke(app, ["availability", room.id, "2025-06-02"])
    assert "2. 12:00-14:00 unavailable" in result.stdout


def test_toggle_out_of_range(room):
    result = runner.invoke(app, ["toggle", room.id, "2025-06-02", "6"])
    assert result.exit_code == 2
    assert "out of range" in result.stdout


def test_availability_unknown_room():
    result = runner.invoke(app, ["availability", "missing", "2025-06-02"])
    assert result.exit_code == 1
    assert "Room missing not found." in result.stdout


def test_availability_load_failure_shows_notice_and_defaults(lib, room, monkeypatch):
    def boom(table, *, filters):
        if table == "room_availability":
            raise StorageFailure("connection refused")
        return {"id": room.id, "name": room.name, "capacity": room.capacity}

    monkeypatch.setattr(lib.store, "select_single", boom)
    result = runner.invoke(app, ["availability", room.id, "2025-06-02"])
    assert result.exit_code == 0
    assert "Failed to load room availability; showing default slots" in result.stdout
    assert "0. 08:00-10:00 available" in result.stdout

    # Toggling on top of a failed load must not save
    toggled = runner.invoke(app, ["toggle", room.id, "2025-06-02", "0"])
    assert toggled.exit_code == 1
    assert lib.store.select("room_availability") == []


def test_reserve_pending_and_approve(lib, room):
    result = runner.invoke(app, ["reserve", "--user", "user-1", "--item", room.id, "--title", "Study Room A",
                                 "--start", "2025-06-02"])
    assert result.exit_code == 0
    assert "[Pending]" in result.stdout

    reservation = lib.get_pending_reservations()[0]
    assert reservation.start_date == reservation.end_date == "2025-06-02"

    pending = runner.invoke(app, ["pending"])
    assert f"{reservation.id} - Study Room A (room) 2025-06-02 -> 2025-06-02 [Pending]" in pending.stdout

    approved = runner.invoke(app, ["approve", reservation.id])
    assert approved.exit_code == 0
    assert "is now Approved." in approved.stdout
    assert "No reservations." in runner.invoke(app, ["pending"]).stdout
    assert lib.unread_count("user-1") == 1


def test_reserve_rejects_bad_range(room):
    result = runner.invoke(app, ["reserve", "--user", "user-1", "--item", room.id, "--title", "X",
                                 "--start", "2025-06-03", "--end", "2025-06-02"])
    assert result.exit_code == 2
    assert "End date cannot be before start date." in result.stdout


def test_decline_and_complete_unknown():
    assert runner.invoke(app, ["decline", "missing"]).exit_code == 1
    result = runner.invoke(app, ["complete", "missing"])
    assert result.exit_code == 1
    assert "Reservation missing not found." in result.stdout


def _unavailable(*args, **kwargs):
    raise StorageFailure("connection refused")


@pytest.mark.parametrize("command, method", [
    (["pending"], "get_pending_reservations"),
    (["approve", "res-1"], "update_reservation_status"),
    (["decline", "res-1"], "update_reservation_status"),
    (["complete", "res-1"], "complete_reservation"),
    (["rooms"], "search_rooms"),
    (["calendar", "--month", "2025-05"], "get_all_reservations"),
])
def test_storage_failure_is_reported_not_raised(lib, monkeypatch, command, method):
    monkeypatch.setattr(lib, method, _unavailable)

    result = runner.invoke(app, command)
    assert result.exit_code == 1
    assert "Error: the library database is unavailable: connection refused" in result.stdout
    assert not isinstance(result.exception, StorageFailure)


def test_unopenable_database_is_reported(monkeypatch):
    monkeypatch.setattr(main, "get_library", _unavailable)

    result = runner.invoke(app, ["pending"])
    assert result.exit_code == 1
    assert "Error:" in result.stdout


def test_stored_bad_date_is_reported(lib, room):
    lib.store.insert("reservations", {
        "user_id": "user-1", "item_id": room.id, "item_type": "room", "title": "Bad",
        "start_date": "15/05/2025", "end_date": "2025-05-16", "status": "Pending",
    })

    result = runner.invoke(app, ["calendar", "--month", "2025-05"])
    assert result.exit_code == 2
    assert "15/05/2025" in result.stdout
    assert not isinstance(result.exception, ValueError)


@patch("subprocess.run")
@patch("webbrowser.open")
def test_serve_command(mock_webbrowser_open, mock_subprocess_run):
    result = runner.invoke(app, ["serve"])
    assert result.exit_code == 0
    assert "Starting web API on" in result.stdout
    mock_webbrowser_open.assert_called_once()
    mock_subprocess_run.assert_called_once()
    # Check if uvicorn is called with correct arguments
    args = mock_subprocess_run.call_args[0][0]
    assert "uvicorn" in args
    assert "api:app" in args
    assert "--host" in args
    assert "--port" in args
    assert "--reload" not in args
