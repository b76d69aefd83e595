import json

import httpx
import pytest

from availability import SOURCE_DEFAULT, SOURCE_FALLBACK, AvailabilityStore
from rest_client import RestStore
from room import default_slots
from store import NotFound, StorageFailure


def make_store(handler, requests=None):
    def recording(request):
        if requests is not None:
            requests.append(request)
        return handler(request)

    return RestStore(base_url="https://backend.test", api_key="anon-key",
                     transport=httpx.MockTransport(recording))


def test_select_sends_equality_filters_and_ordering():
    requests = []
    store = make_store(lambda r: httpx.Response(200, json=[{"id": "1"}]), requests)

    rows = store.select("reservations", filters={"user_id": "u1", "is_read": False},
                        order_by="created_at", descending=True)

    assert rows == [{"id": "1"}]
    request = requests[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/reservations"
    assert request.url.params["user_id"] == "eq.u1"
    assert request.url.params["is_read"] == "eq.false"
    assert request.url.params["order"] == "created_at.desc"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer anon-key"


def test_select_single_asks_for_one_object():
    requests = []
    store = make_store(lambda r: httpx.Response(200, json={"id": "r1", "name": "Room"}), requests)

    row = store.select_single("rooms", filters={"id": "r1"})

    assert row["name"] == "Room"
    assert requests[0].headers["Accept"] == "application/vnd.pgrst.object+json"


def test_zero_rows_for_single_maps_to_not_found():
    store = make_store(lambda r: httpx.Response(406, json={
        "code": "PGRST116",
        "message": "JSON object requested, multiple (or no) rows returned",
        "details": "The result contains 0 rows",
    }))
    with pytest.raises(NotFound):
        store.select_single("room_availability", filters={"room_id": "r1", "date": "2025-06-02"})


def test_several_rows_for_single_is_a_storage_failure():
    store = make_store(lambda r: httpx.Response(406, json={
        "code": "PGRST116",
        "message": "JSON object requested, multiple (or no) rows returned",
        "details": "The result contains 2 rows",
    }))
    with pytest.raises(StorageFailure):
        store.select_single("room_availability", filters={"room_id": "r1", "date": "2025-06-02"})

    result = AvailabilityStore(store).load("r1", "2025-06-02")
    assert result.source == SOURCE_FALLBACK
    assert result.failed


def test_server_error_maps_to_storage_failure():
    store = make_store(lambda r: httpx.Response(500, json={"code": "XX000", "message": "boom"}))
    with pytest.raises(StorageFailure, match="boom"):
        store.select("rooms")


def test_transport_error_maps_to_storage_failure():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = make_store(refuse)
    with pytest.raises(StorageFailure):
        store.select("rooms")


def test_insert_returns_the_created_row():
    requests = []
    store = make_store(lambda r: httpx.Response(201, json=[{"id": "new", "name": "Lab"}]), requests)

    row = store.insert("rooms", {"name": "Lab"})

    assert row == {"id": "new", "name": "Lab"}
    assert requests[0].method == "POST"
    assert requests[0].headers["Prefer"] == "return=representation"
    assert json.loads(requests[0].content) == [{"name": "Lab"}]


def test_update_and_delete_report_affected_rows():
    store = make_store(lambda r: httpx.Response(200, json=[{"id": "1"}, {"id": "2"}]))
    assert store.update("notifications", {"is_read": True}, filters={"user_id": "u1"}) == 2
    assert store.delete("notifications", filters={"user_id": "u1"}) == 2


def test_delete_requires_filters():
    store = make_store(lambda r: httpx.Response(200, json=[]))
    with pytest.raises(ValueError):
        store.delete("rooms", filters={})


def test_availability_over_rest_missing_record_is_default():
    store = make_store(lambda r: httpx.Response(406, json={
        "code": "PGRST116", "message": "no rows", "details": "The result contains 0 rows"}))
    result = AvailabilityStore(store).load("r1", "2025-06-02")
    assert result.source == SOURCE_DEFAULT
    assert not result.failed


def test_availability_over_rest_outage_falls_back_once():
    calls = []
    store = make_store(lambda r: httpx.Response(503, json={"message": "unavailable"}), calls)

    result = AvailabilityStore(store).load("r1", "2025-06-02")

    assert result.source == SOURCE_FALLBACK
    assert result.failed
    # No retries
    assert len(calls) == 1


def test_save_availability_over_rest_inserts_when_missing():
    requests = []

    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json=[])
        return httpx.Response(201, json=[{"id": "a1"}])

    store = make_store(handler, requests)
    AvailabilityStore(store).save_availability("r1", "2025-06-02", default_slots())

    assert [r.method for r in requests] == ["GET", "POST"]
    body = json.loads(requests[1].content)[0]
    assert body["room_id"] == "r1"
    assert body["date"] == "2025-06-02"
    assert len(json.loads(body["slots"])) == 6


def test_context_manager_closes_client():
    with make_store(lambda r: httpx.Response(200, json=[])) as store:
        assert store.select("rooms") == []
    assert store._client.is_closed
