import datetime as dt
from zoneinfo import ZoneInfo

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.metrics import Metrics, MetricUnit
from botocore.exceptions import ClientError
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.responses import Response

from roombook import dal
from roombook.availability import conflicting_dates, free_intervals, not_before, slot_starts
from roombook.config import Settings, get_settings
from roombook.errors import (
    BookingConflictError,
    InvalidRange,
    InvalidStatusTransition,
    InvalidTimeFormat,
    UnsupportedRecurrencePattern,
)
from roombook.models import (
    AvailabilityCheck,
    AvailabilityResult,
    Booking,
    BookingStatus,
    BookingCreate,
    BookingSlot,
    BookingUpdate,
    IntervalOut,
    Occurrence,
    RoomAvailability,
    StatusChange,
)
from roombook.recurrence import occurrences, occurs_on
from roombook.timeutil import format_12h, format_hhmm

logger = Logger()
tracer = Tracer()
metrics = Metrics(namespace="RoomBooking")

app = FastAPI(title="Room Booking API", version="0.1.0")

BOOKING_NOT_FOUND = "Booking not found"
SLOT_UNAVAILABLE = "This time slot is unavailable due to an overlapping booking."
SLOT_AVAILABLE = "This time slot is available."


@app.exception_handler(BookingConflictError)
def _conflict_handler(request: Request, exc: BookingConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": SLOT_UNAVAILABLE, "conflicts": [d.isoformat() for d in exc.dates]},
    )


@app.exception_handler(InvalidStatusTransition)
def _transition_handler(request: Request, exc: InvalidStatusTransition) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
def _validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    errors = exc.errors(include_url=False, include_context=False, include_input=False)
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


@app.exception_handler(InvalidRange)
@app.exception_handler(InvalidTimeFormat)
@app.exception_handler(UnsupportedRecurrencePattern)
def _value_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


def _now(tz: ZoneInfo) -> dt.datetime:
    return dt.datetime.now(tz)


def _ensure_no_conflict(slot: BookingSlot, settings: Settings, exclude_booking_id: str | None = None) -> None:
    conflicts = conflicting_dates(
        slot,
        dal.list_bookings_for_room(slot.room_id),
        buffer_minutes=settings.conflict_buffer_minutes,
        exclude_booking_id=exclude_booking_id,
    )
    if conflicts:
        metrics.add_metric(name="BookingConflict", value=1, unit=MetricUnit.Count)
        logger.info(
            "Booking conflicts with confirmed bookings",
            extra={"room_id": slot.room_id, "conflicts": [d.isoformat() for d in conflicts]},
        )
        raise BookingConflictError(conflicts)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/bookings", response_model=list[Booking])
@tracer.capture_method
def list_bookings(status: BookingStatus | None = None) -> list[Booking]:
    return dal.list_bookings(status=status)


@app.get("/bookings/recurring-bookings/{recurring_group_id}", response_model=list[Booking])
@tracer.capture_method
def get_recurring_group(recurring_group_id: str) -> list[Booking]:
    bookings = dal.list_bookings_for_group(recurring_group_id)
    if not bookings:
        raise HTTPException(status_code=404, detail="Recurring group not found")
    return bookings


@app.post("/bookings", response_model=Booking, status_code=201)
@tracer.capture_method
def create_booking(payload: BookingCreate, settings: Settings = Depends(get_settings)) -> Booking:
    _ensure_no_conflict(payload, settings)
    metrics.add_metric(name="CreateBooking", value=1, unit=MetricUnit.Count)
    return dal.create_booking(payload)


@app.post("/bookings/check-availability", response_model=AvailabilityResult)
@tracer.capture_method
def check_availability(payload: AvailabilityCheck, settings: Settings = Depends(get_settings)) -> AvailabilityResult:
    metrics.add_metric(name="AvailabilityCheck", value=1, unit=MetricUnit.Count)
    conflicts = conflicting_dates(
        payload,
        dal.list_bookings_for_room(payload.room_id),
        buffer_minutes=settings.conflict_buffer_minutes,
        exclude_booking_id=payload.exclude_booking_id,
    )
    if conflicts:
        return AvailabilityResult(available=False, message=SLOT_UNAVAILABLE, conflicts=conflicts)
    return AvailabilityResult(available=True, message=SLOT_AVAILABLE)


@app.get("/bookings/{booking_id}", response_model=Booking)
@tracer.capture_method
def get_booking(booking_id: str) -> Booking:
    try:
        return dal.get_booking(booking_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=BOOKING_NOT_FOUND) from exc


@app.get("/users/{user_id}/bookings", response_model=list[Booking])
@tracer.capture_method
def list_user_bookings(user_id: str) -> list[Booking]:
    return dal.list_bookings_for_user(user_id)


@app.put("/bookings/{booking_id}", response_model=Booking)
@tracer.capture_method
def update_booking(booking_id: str, payload: BookingUpdate, settings: Settings = Depends(get_settings)) -> Booking:
    try:
        current = dal.get_booking(booking_id)
        _ensure_no_conflict(payload.apply_to(current), settings, exclude_booking_id=booking_id)
        return dal.update_booking(booking_id, payload)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=BOOKING_NOT_FOUND) from exc


@app.delete("/bookings/{booking_id}")
@tracer.capture_method
def delete_booking(booking_id: str) -> Response:
    dal.delete_booking(booking_id)
    return Response(status_code=204)


def _change_status(booking_id: str, status: str, change: StatusChange | None) -> Booking:
    change = change or StatusChange()
    try:
        booking = dal.set_status(booking_id, status, reason=change.reason, changed_by=change.changed_by)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=BOOKING_NOT_FOUND) from exc
    except ClientError as exc:
        if exc.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
            raise
        raise HTTPException(status_code=409, detail="Booking status changed concurrently") from exc
    metrics.add_metric(name="StatusTransition", value=1, unit=MetricUnit.Count)
    return booking


@app.post("/bookings/{booking_id}/confirm", response_model=Booking)
@tracer.capture_method
def confirm_booking(
    booking_id: str,
    change: StatusChange | None = None,
    settings: Settings = Depends(get_settings),
) -> Booking:
    try:
        current = dal.get_booking(booking_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=BOOKING_NOT_FOUND) from exc
    _ensure_no_conflict(current, settings, exclude_booking_id=booking_id)
    return _change_status(booking_id, "confirmed", change)


@app.post("/bookings/{booking_id}/decline", response_model=Booking)
@tracer.capture_method
def decline_booking(booking_id: str, change: StatusChange | None = None) -> Booking:
    return _change_status(booking_id, "declined", change)


@app.post("/bookings/{booking_id}/cancel", response_model=Booking)
@tracer.capture_method
def cancel_booking(booking_id: str, change: StatusChange | None = None) -> Booking:
    return _change_status(booking_id, "cancelled", change)


@app.get("/rooms/{room_id}/availability", response_model=RoomAvailability)
@tracer.capture_method
def room_availability(room_id: str, date: dt.date, settings: Settings = Depends(get_settings)) -> RoomAvailability:
    hours = settings.business_hours
    bookings = [b for b in dal.list_bookings_for_room(room_id) if occurs_on(b, date)]
    intervals = free_intervals(bookings, hours, settings.availability_buffer_minutes)

    now = _now(settings.tz)
    if date == now.date():
        intervals = not_before(intervals, now.hour * 60 + now.minute)

    return RoomAvailability(
        room_id=room_id,
        date=date,
        business_hours=IntervalOut(start=format_hhmm(hours.start), end=format_hhmm(hours.end)),
        intervals=[IntervalOut(start=format_hhmm(i.start), end=format_hhmm(i.end)) for i in intervals],
        slot_starts=[format_12h(m) for m in slot_starts(intervals, settings.slot_step_minutes)],
    )


@app.get("/rooms/{room_id}/calendar", response_model=list[Occurrence])
@tracer.capture_method
def room_calendar(room_id: str, start: dt.date, end: dt.date) -> list[Occurrence]:
    if end < start:
        raise HTTPException(status_code=422, detail="end must not be before start")
    found = [
        occurrence
        for booking in dal.list_bookings_for_room(room_id)
        for occurrence in occurrences(booking, start, end)
    ]
    return sorted(found, key=lambda o: (o.date, o.start_time))
