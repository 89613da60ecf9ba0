from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime, time
from typing import TYPE_CHECKING, Any, TypedDict, cast

import boto3
from aws_lambda_powertools import Logger

if TYPE_CHECKING:
    # Only for static type checking; not imported at runtime
    from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource
    from mypy_boto3_dynamodb.service_resource import Table as DynamoDBTable
else:
    # Fallbacks to satisfy annotations at runtime
    DynamoDBServiceResource = Any  # type: ignore[assignment]
    DynamoDBTable = Any  # type: ignore[assignment]

from .config import get_settings
from .models import Booking, BookingCreate, BookingUpdate, check_transition, new_group_id

logger = Logger()

_dynamodb: DynamoDBServiceResource = boto3.resource("dynamodb")
_table: DynamoDBTable = _dynamodb.Table(get_settings().table_name)

BOOKING_NOT_FOUND = "Booking not found"


class BookingItem(TypedDict, total=False):
    booking_id: str
    user_id: str
    room_id: str
    building_id: str
    category_id: str
    title: str
    notes: str
    date: str
    start_time: str
    end_time: str
    status: str
    is_recurring: bool
    recurrence_pattern: str
    recurrence_end_date: str
    recurring_group_id: str
    decline_reason: str
    cancel_reason: str
    changed_by: str
    time_submitted: str


def _dt_to_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).isoformat()


def _to_attr(value: Any) -> Any:
    # DynamoDB has no date/time types; store ISO strings so they sort lexically
    if isinstance(value, datetime):
        return _dt_to_iso(value)
    if isinstance(value, date | time):
        return value.isoformat()
    return value


def _collect(operation: Callable[..., Any], **kwargs: Any) -> list[BookingItem]:
    items: list[BookingItem] = []
    while True:
        resp = cast(dict[str, Any], operation(**kwargs))
        items.extend(cast(BookingItem, it) for it in resp.get("Items", []) if isinstance(it, dict))
        last_key = resp.get("LastEvaluatedKey")
        if not last_key:
            return items
        kwargs["ExclusiveStartKey"] = last_key


def _query_all(**kwargs: Any) -> list[BookingItem]:
    return _collect(_table.query, **kwargs)


def _scan_all(**kwargs: Any) -> list[BookingItem]:
    return _collect(_table.scan, **kwargs)


def _sorted(items: list[BookingItem]) -> list[Booking]:
    return sorted((_to_model(it) for it in items), key=lambda b: (b.date, b.start_time))


def create_booking(payload: BookingCreate) -> Booking:
    booking_id = str(uuid.uuid4())
    group_id = new_group_id() if payload.is_recurring else None
    item = cast(
        BookingItem,
        {
            key: _to_attr(value)
            for key, value in payload.model_dump().items()
            if value is not None
        },
    )
    item["booking_id"] = booking_id
    item["status"] = "pending"
    item["time_submitted"] = _dt_to_iso(datetime.now(UTC))
    if group_id is not None:
        item["recurring_group_id"] = group_id

    logger.info(
        "Creating booking",
        extra={"booking_id": booking_id, "room_id": payload.room_id, "recurring_group_id": group_id},
    )
    _table.put_item(Item=item, ConditionExpression="attribute_not_exists(booking_id)")  # type: ignore
    return get_booking(booking_id)


def get_booking(booking_id: str) -> Booking:
    resp = cast(dict[str, Any], _table.get_item(Key={"booking_id": booking_id}))
    item = resp.get("Item")
    if not isinstance(item, dict):
        raise KeyError(BOOKING_NOT_FOUND)
    return _to_model(cast(BookingItem, item))


def list_bookings(status: str | None = None) -> list[Booking]:
    """Every booking, or only those in *status*, ordered by date and start time."""
    if status is None:
        return _sorted(_scan_all())
    items = _query_all(
        IndexName="status_index",
        KeyConditionExpression="#s = :status",
        ExpressionAttributeNames={"#s": "status"},
        ExpressionAttributeValues={":status": status},
    )
    return _sorted(items)


def list_bookings_for_group(recurring_group_id: str) -> list[Booking]:
    items = _query_all(
        IndexName="recurring_group_id_index",
        KeyConditionExpression="recurring_group_id = :gid",
        ExpressionAttributeValues={":gid": recurring_group_id},
    )
    return _sorted(items)


def list_bookings_for_user(user_id: str) -> list[Booking]:
    items = _query_all(
        IndexName="user_id_index",
        KeyConditionExpression="user_id = :uid",
        ExpressionAttributeValues={":uid": user_id},
    )
    return _sorted(items)


def list_bookings_for_room(room_id: str) -> list[Booking]:
    # Recurring series are stored once, so callers match dates in memory.
    items = _query_all(
        IndexName="room_id_index",
        KeyConditionExpression="room_id = :rid",
        ExpressionAttributeValues={":rid": room_id},
    )
    return [_to_model(it) for it in items]


def update_booking(booking_id: str, payload: BookingUpdate) -> Booking:
    # Fetch existing, then update selectively
    current = get_booking(booking_id)
    merged = payload.apply_to(current)

    set_parts: list[str] = []
    remove_parts: list[str] = []
    names: dict[str, str] = {}
    values: dict[str, Any] = {}

    def set_attr(name: str, value: Any) -> None:
        names[f"#_{name}"] = name
        if value is None:
            remove_parts.append(f"#_{name}")
            return
        values[f":{name}"] = _to_attr(value)
        set_parts.append(f"#_{name} = :{name}")

    changed = set(payload.changes())
    if merged.recurring_group_id != current.recurring_group_id:
        changed.add("recurring_group_id")
    if not merged.is_recurring and current.is_recurring:
        changed.update({"recurrence_pattern", "recurrence_end_date"})
    for name in sorted(changed):
        set_attr(name, getattr(merged, name))

    # Join parts into a single expression; if none -> no-op
    update_expr = " ".join(
        part
        for part in (
            ("SET " + ", ".join(set_parts)) if set_parts else "",
            ("REMOVE " + ", ".join(remove_parts)) if remove_parts else "",
        )
        if part
    )
    if not update_expr:
        return current

    logger.info("Updating booking", extra={"booking_id": booking_id, "fields": sorted(changed)})
    resp = cast(
        dict[str, Any],
        _table.update_item(
            Key={"booking_id": booking_id},
            UpdateExpression=update_expr,
            ReturnValues="ALL_NEW",
            ConditionExpression="attribute_exists(booking_id)",
            ExpressionAttributeNames=names,
            **({"ExpressionAttributeValues": values} if values else {}),
        ),
    )
    attrs = cast(dict[str, Any], resp.get("Attributes") or {})
    return _to_model(cast(BookingItem, attrs))


def delete_booking(booking_id: str) -> None:
    logger.info("Deleting booking", extra={"booking_id": booking_id})
    _table.delete_item(Key={"booking_id": booking_id})


def set_status(
    booking_id: str,
    status: str,
    *,
    reason: str | None = None,
    changed_by: str | None = None,
) -> Booking:
    current = get_booking(booking_id)
    check_transition(current.status, status)

    names = {"#s": "status"}
    values: dict[str, Any] = {":s": status, ":current": current.status}
    set_parts = ["#s = :s"]
    reason_attr = {"declined": "decline_reason", "cancelled": "cancel_reason"}.get(status)
    if reason is not None and reason_attr is not None:
        names["#r"] = reason_attr
        values[":r"] = reason
        set_parts.append("#r = :r")
    if changed_by is not None:
        names["#by"] = "changed_by"
        values[":by"] = changed_by
        set_parts.append("#by = :by")

    logger.info(
        "Changing booking status",
        extra={"booking_id": booking_id, "old_status": current.status, "new_status": status},
    )
    # The condition makes a concurrent transition fail instead of being overwritten
    resp = cast(
        dict[str, Any],
        _table.update_item(
            Key={"booking_id": booking_id},
            UpdateExpression="SET " + ", ".join(set_parts),
            ConditionExpression="#s = :current",
            ExpressionAttributeNames=names,
            ExpressionAttributeValues=values,
            ReturnValues="ALL_NEW",
        ),
    )
    attrs = cast(dict[str, Any], resp.get("Attributes") or {})
    return _to_model(cast(BookingItem, attrs))


def _to_model(item: BookingItem) -> Booking:
    return Booking.model_validate(
        {
            **item,
            "status": item.get("status", "pending"),
            "is_recurring": bool(item.get("is_recurring", False)),
        }
    )
