from __future__ import annotations

import json
from typing import Any

import boto3
from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.utilities.typing import LambdaContext

logger = Logger()
tracer = Tracer()

_events = boto3.client("events")

_REASON_ATTRS = {"declined": "decline_reason", "cancelled": "cancel_reason"}


def _s(image: dict[str, Any], name: str) -> str | None:
    return image.get(name, {}).get("S")


@tracer.capture_lambda_handler
def lambda_handler(event: dict[str, Any], context: LambdaContext) -> None:
    # Triggered by the bookings table stream; only status transitions matter
    entries = []
    for record in event.get("Records", []):
        if record.get("eventName") != "MODIFY":
            continue

        ddb = record.get("dynamodb", {})
        old_image = ddb.get("OldImage", {})
        new_image = ddb.get("NewImage", {})
        booking_id = _s(new_image, "booking_id")
        old_status = _s(old_image, "status")
        new_status = _s(new_image, "status")

        if not booking_id or not new_status or old_status == new_status:
            continue

        reason_attr = _REASON_ATTRS.get(new_status)
        detail = {
            "version": "1.0",
            "type": "BookingStatusChanged",
            "booking_id": booking_id,
            "user_id": _s(new_image, "user_id"),
            "room_id": _s(new_image, "room_id"),
            "date": _s(new_image, "date"),
            "old_status": old_status,
            "new_status": new_status,
            "reason": _s(new_image, reason_attr) if reason_attr else None,
            "changed_by": _s(new_image, "changed_by"),
        }
        logger.info("Emitting status change event", extra=detail)
        entries.append(
            {
                "Source": "booking.status",
                "DetailType": "BookingStatusChanged",
                "Detail": json.dumps(detail),
            }
        )

    # PutEvents accepts at most 10 entries per call
    for start in range(0, len(entries), 10):
        _events.put_events(Entries=entries[start : start + 10])
