from __future__ import annotations

from datetime import date, time

import pytest

from roombook import dal
from roombook.errors import InvalidStatusTransition
from roombook.models import BookingCreate, BookingUpdate


class FakeTable:
    def __init__(self):
        self.items = {}
        self.calls = []

    def put_item(self, Item, **kwargs):  # noqa NOSONAR
        self.items[Item["booking_id"]] = dict(Item)

    def get_item(self, Key):  # noqa NOSONAR
        item = self.items.get(Key["booking_id"])
        return {"Item": dict(item)} if item else {}

    def update_item(self, **kwargs):
        self.calls.append(kwargs)
        key = kwargs["Key"]["booking_id"]
        attrs = self.items[key]
        # naive: resolve #names/:values for SET, then drop REMOVE'd names
        eav = kwargs.get("ExpressionAttributeValues") or {}
        ean = kwargs.get("ExpressionAttributeNames") or {}
        update_expr = kwargs.get("UpdateExpression", "")
        set_part, _, remove_part = update_expr.partition("REMOVE")
        if "SET" in set_part:
            for assign in [s.strip() for s in set_part.split("SET", 1)[1].split(",") if s.strip()]:
                name, val = [s.strip() for s in assign.split("=")]
                attrs[ean.get(name, name)] = eav[val]
        for name in [s.strip() for s in remove_part.split(",") if s.strip()]:
            attrs.pop(ean.get(name, name), None)
        self.items[key] = attrs
        return {"Attributes": dict(attrs)}

    def delete_item(self, Key):  # noqa NOSONAR
        self.items.pop(Key["booking_id"], None)

    def query(self, **kwargs):
        attr = {
            "user_id_index": "user_id",
            "room_id_index": "room_id",
            "status_index": "status",
            "recurring_group_id_index": "recurring_group_id",
        }[kwargs["IndexName"]]
        wanted = next(iter(kwargs["ExpressionAttributeValues"].values()))
        items = [dict(it) for it in self.items.values() if it.get(attr) == wanted]
        return {"Items": items}

    def scan(self, **kwargs):
        self.calls.append(kwargs)
        return {"Items": [dict(it) for it in self.items.values()]}


@pytest.fixture(autouse=True)
def patch_table(monkeypatch):
    fake = FakeTable()
    monkeypatch.setattr(dal, "_table", fake)
    return fake


def create_payload(**overrides) -> BookingCreate:
    base = dict(
        user_id="u1",
        room_id="r1",
        date=date(2030, 1, 7),
        start_time="10:00",
        end_time="11:00",
        title="Planning",
    )
    base.update(overrides)
    return BookingCreate(**base)


def test_create_and_get_booking(patch_table):
    booking = dal.create_booking(create_payload())
    fetched = dal.get_booking(booking.booking_id)
    assert fetched.booking_id == booking.booking_id
    assert fetched.user_id == "u1"
    assert fetched.status == "pending"
    assert fetched.start_time == time(10, 0)
    assert fetched.time_submitted is not None
    stored = patch_table.items[booking.booking_id]
    assert stored["date"] == "2030-01-07"
    assert stored["start_time"] == "10:00:00"
    assert "recurring_group_id" not in stored


def test_create_recurring_booking_is_stored_once_with_group(patch_table):
    booking = dal.create_booking(
        create_payload(is_recurring=True, recurrence_pattern="Weekly", recurrence_end_date=date(2030, 2, 4))
    )
    assert len(patch_table.items) == 1
    assert booking.recurring_group_id
    assert booking.recurrence_pattern == "Weekly"
    assert booking.recurrence_end_date == date(2030, 2, 4)


def test_get_booking_not_found_raises_keyerror():
    with pytest.raises(KeyError):
        dal.get_booking("does-not-exist")


def test_list_bookings_for_user_sorted_by_date_and_time():
    late = dal.create_booking(create_payload(date=date(2030, 1, 8)))
    _ = dal.create_booking(create_payload(user_id="u2"))
    early = dal.create_booking(create_payload(start_time="08:00", end_time="09:00"))
    bookings = dal.list_bookings_for_user("u1")
    assert [b.booking_id for b in bookings] == [early.booking_id, late.booking_id]


def test_list_bookings_for_room():
    b1 = dal.create_booking(create_payload())
    _ = dal.create_booking(create_payload(room_id="r2"))
    assert [b.booking_id for b in dal.list_bookings_for_room("r1")] == [b1.booking_id]


def test_query_follows_pagination(monkeypatch, patch_table):
    pages = [
        {"Items": [{"booking_id": "a"}], "LastEvaluatedKey": {"booking_id": "a"}},
        {"Items": [{"booking_id": "b"}]},
    ]
    seen = []

    def query(**kwargs):
        seen.append(kwargs.get("ExclusiveStartKey"))
        return pages[len(seen) - 1]

    monkeypatch.setattr(patch_table, "query", query)
    items = dal._query_all(IndexName="room_id_index")
    assert [it["booking_id"] for it in items] == ["a", "b"]
    assert seen == [None, {"booking_id": "a"}]


def test_list_bookings_returns_everything_in_date_order(patch_table):
    later = dal.create_booking(create_payload(user_id="u2", date=date(2030, 1, 9)))
    first = dal.create_booking(create_payload())
    bookings = dal.list_bookings()
    assert [b.booking_id for b in bookings] == [first.booking_id, later.booking_id]
    assert patch_table.calls == [{}]


def test_list_bookings_filters_by_status():
    pending = dal.create_booking(create_payload())
    confirmed = dal.create_booking(create_payload(room_id="r2"))
    dal.set_status(confirmed.booking_id, "confirmed")
    assert [b.booking_id for b in dal.list_bookings(status="pending")] == [pending.booking_id]
    assert [b.booking_id for b in dal.list_bookings(status="confirmed")] == [confirmed.booking_id]
    assert dal.list_bookings(status="declined") == []


def test_scan_follows_pagination(monkeypatch, patch_table):
    pages = [
        {"Items": [{"booking_id": "a"}], "LastEvaluatedKey": {"booking_id": "a"}},
        {"Items": [{"booking_id": "b"}]},
    ]
    seen = []

    def scan(**kwargs):
        seen.append(kwargs.get("ExclusiveStartKey"))
        return pages[len(seen) - 1]

    monkeypatch.setattr(patch_table, "scan", scan)
    assert [it["booking_id"] for it in dal._scan_all()] == ["a", "b"]
    assert seen == [None, {"booking_id": "a"}]


def test_list_bookings_for_group():
    series = dal.create_booking(
        create_payload(is_recurring=True, recurrence_pattern="Weekly", recurrence_end_date=date(2030, 2, 4))
    )
    _ = dal.create_booking(create_payload(room_id="r2"))
    found = dal.list_bookings_for_group(series.recurring_group_id)
    assert [b.booking_id for b in found] == [series.booking_id]
    assert dal.list_bookings_for_group("unknown-group") == []


def test_update_booking_changes_fields():
    b = dal.create_booking(create_payload())
    updated = dal.update_booking(
        b.booking_id,
        BookingUpdate(room_id="r-new", start_time="1:00 PM", end_time="2:30 PM", notes=None),
    )
    assert updated.room_id == "r-new"
    assert updated.start_time == time(13, 0)
    assert updated.end_time == time(14, 30)
    assert updated.title == "Planning"


def test_update_booking_starts_and_ends_series(patch_table):
    b = dal.create_booking(create_payload())
    series = dal.update_booking(
        b.booking_id,
        BookingUpdate(is_recurring=True, recurrence_pattern="Daily", recurrence_end_date=date(2030, 1, 10)),
    )
    assert series.recurring_group_id
    assert patch_table.items[b.booking_id]["recurrence_end_date"] == "2030-01-10"

    single = dal.update_booking(b.booking_id, BookingUpdate(recurrence_pattern="No"))
    assert not single.is_recurring
    stored = patch_table.items[b.booking_id]
    assert "recurring_group_id" not in stored
    assert "recurrence_pattern" not in stored


def test_update_booking_noop_returns_current(patch_table):
    b = dal.create_booking(create_payload())
    updated = dal.update_booking(b.booking_id, BookingUpdate())
    assert updated.booking_id == b.booking_id
    assert updated.room_id == b.room_id
    assert patch_table.calls == []


def test_set_status_confirm_then_cancel_with_reason(patch_table):
    b = dal.create_booking(create_payload())
    confirmed = dal.set_status(b.booking_id, "confirmed", changed_by="admin")
    assert confirmed.status == "confirmed"
    assert confirmed.changed_by == "admin"
    assert patch_table.calls[-1]["ConditionExpression"] == "#s = :current"
    assert patch_table.calls[-1]["ExpressionAttributeValues"][":current"] == "pending"

    cancelled = dal.set_status(b.booking_id, "cancelled", reason="Moved online")
    assert cancelled.status == "cancelled"
    assert cancelled.cancel_reason == "Moved online"


def test_set_status_decline_records_reason():
    b = dal.create_booking(create_payload())
    declined = dal.set_status(b.booking_id, "declined", reason="Room under maintenance")
    assert declined.decline_reason == "Room under maintenance"


def test_set_status_rejects_invalid_transition(patch_table):
    b = dal.create_booking(create_payload())
    dal.set_status(b.booking_id, "declined")
    with pytest.raises(InvalidStatusTransition):
        dal.set_status(b.booking_id, "confirmed")
    assert patch_table.items[b.booking_id]["status"] == "declined"


def test_delete_booking_then_get_raises():
    b = dal.create_booking(create_payload())
    dal.delete_booking(b.booking_id)
    with pytest.raises(KeyError):
        dal.get_booking(b.booking_id)


def test_update_pattern_on_single_booking_starts_series(patch_table):
    b = dal.create_booking(create_payload())
    series = dal.update_booking(
        b.booking_id,
        BookingUpdate(recurrence_pattern="Weekly", recurrence_end_date=date(2030, 1, 28)),
    )
    assert series.is_recurring
    assert series.recurring_group_id
    stored = patch_table.items[b.booking_id]
    assert stored["is_recurring"] is True
    assert stored["recurrence_pattern"] == "Weekly"
