from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock

import pytest

import roombook.stream_processor as sp


def make_ddb_attr_s(val: str) -> dict[str, Any]:
    return {"S": val}


def modify_record(old_status: str, new_status: str, **new_attrs: str) -> dict[str, Any]:
    new_image = {
        "booking_id": make_ddb_attr_s("b-1"),
        "user_id": make_ddb_attr_s("u-1"),
        "room_id": make_ddb_attr_s("r-1"),
        "date": make_ddb_attr_s("2030-01-07"),
        "status": make_ddb_attr_s(new_status),
    }
    new_image.update({name: make_ddb_attr_s(val) for name, val in new_attrs.items()})
    return {
        "eventName": "MODIFY",
        "dynamodb": {
            "OldImage": {"booking_id": make_ddb_attr_s("b-1"), "status": make_ddb_attr_s(old_status)},
            "NewImage": new_image,
        },
    }


@pytest.fixture()
def fake_events(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    fake = MagicMock()
    monkeypatch.setattr(sp, "_events", fake)
    return fake


def test_stream_processor_emits_event_for_status_change(fake_events: MagicMock) -> None:
    event = {"Records": [modify_record("pending", "declined", decline_reason="Maintenance", changed_by="admin")]}

    sp.lambda_handler(event, context=MagicMock())  # type: ignore[arg-type]
    assert fake_events.put_events.called
    args, kwargs = fake_events.put_events.call_args
    entry = kwargs["Entries"][0]
    assert entry["Source"] == "booking.status"
    assert entry["DetailType"] == "BookingStatusChanged"
    detail = json.loads(entry["Detail"])
    assert detail["booking_id"] == "b-1"
    assert detail["user_id"] == "u-1"
    assert detail["old_status"] == "pending"
    assert detail["new_status"] == "declined"
    assert detail["reason"] == "Maintenance"
    assert detail["changed_by"] == "admin"


def test_stream_processor_skips_non_modify(fake_events: MagicMock) -> None:
    event = {"Records": [{"eventName": "INSERT"}, {"eventName": "REMOVE"}]}
    sp.lambda_handler(event, context=MagicMock())  # type: ignore[arg-type]
    fake_events.put_events.assert_not_called()


def test_stream_processor_skips_edits_without_status_change(fake_events: MagicMock) -> None:
    event = {"Records": [modify_record("confirmed", "confirmed", title="Renamed")]}
    sp.lambda_handler(event, context=MagicMock())  # type: ignore[arg-type]
    fake_events.put_events.assert_not_called()


def test_stream_processor_batches_put_events(fake_events: MagicMock) -> None:
    event = {"Records": [modify_record("pending", "confirmed") for _ in range(12)]}
    sp.lambda_handler(event, context=MagicMock())  # type: ignore[arg-type]
    sizes = [len(call.kwargs["Entries"]) for call in fake_events.put_events.call_args_list]
    assert sizes == [10, 2]
