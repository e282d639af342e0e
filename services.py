"""Domain operations for events, registrations, check-in and support.

Views call these functions and turn the raised ``SwiftAttendError`` subclasses
into flashed messages or JSON errors. Every write commits its own session.
"""
import csv
import logging
import uuid
from datetime import date, datetime, timezone
from io import StringIO

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from extensions import db
from exceptions import (
    AlreadyCheckedInError,
    AlreadyRegisteredError,
    ConflictError,
    EventFullError,
    InvalidCodeError,
    NotFoundError,
    ValidationError,
    WrongEventError,
)
from models import ISSUE_TYPES, Attendance, Event, Registration, SupportMessage, User
from utils import generate_backup_code, generate_event_qr_data, generate_registration_qr_data

logger = logging.getLogger(__name__)

# Attempts at drawing a QR payload/backup code pair that collides with nothing
CODE_ATTEMPTS = 5


# =====================
# EVENTS
# =====================
def parse_event_form(form):
    """Validate raw form fields and return keyword arguments for an Event."""
    name = (form.get("name") or "").strip()
    location = (form.get("location") or "").strip()
    if not name:
        raise ValidationError("Event name is required")
    if not location:
        raise ValidationError("Location is required")

    try:
        event_date = datetime.strptime(form.get("event_date") or "", "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError("Invalid date")

    try:
        start_time = datetime.strptime(form.get("start_time") or "", "%H:%M").time()
        end_time = datetime.strptime(form.get("end_time") or "", "%H:%M").time()
    except ValueError:
        raise ValidationError("Invalid start or end time")
    if end_time <= start_time:
        raise ValidationError("End time must be after start time")

    max_capacity = None
    raw_capacity = (form.get("max_capacity") or "").strip()
    if raw_capacity:
        try:
            max_capacity = int(raw_capacity)
        except ValueError:
            raise ValidationError("Max capacity must be a number")
        if max_capacity < 1:
            raise ValidationError("Max capacity must be at least 1")

    return {
        "name": name,
        "description": (form.get("description") or "").strip() or None,
        "event_date": event_date,
        "start_time": start_time,
        "end_time": end_time,
        "location": location,
        "max_capacity": max_capacity,
    }


def create_event(creator, poster_filename=None, **fields):
    event = Event(
        created_by=creator.id,
        qr_code_data=generate_event_qr_data(),
        poster_filename=poster_filename,
        **fields,
    )
    db.session.add(event)
    db.session.commit()
    logger.info("Event %s (%s) created by %s", event.id, event.name, creator.email)
    return event


def get_event(event_id):
    event = db.session.get(Event, event_id) if event_id else None
    if event is None:
        raise NotFoundError("Event not found")
    return event


def update_event(event_id, poster_filename=None, **fields):
    event = get_event(event_id)
    for key, value in fields.items():
        setattr(event, key, value)
    if poster_filename:
        event.poster_filename = poster_filename
    db.session.commit()
    logger.info("Event %s updated", event.id)
    return event


def delete_event(event_id):
    event = get_event(event_id)
    db.session.delete(event)
    db.session.commit()
    logger.info("Event %s deleted with its registrations", event_id)


def list_events(role, today=None):
    """Events ordered by date, start time, then creation.

    Participants only see events dated today or later.
    """
    query = Event.query
    if role == "participant":
        query = query.filter(Event.event_date >= (today or date.today()))
    return query.order_by(
        Event.event_date, Event.start_time, Event.created_at, Event.id
    ).all()


def _stats(event, registrations, attendances):
    return {
        "total_registrations": registrations,
        "total_attendances": attendances,
        "attendance_rate": (attendances / registrations) * 100 if registrations else 0,
        "max_capacity": event.max_capacity,
    }


def get_event_stats(event_id):
    return get_events_stats([get_event(event_id)])[event_id]


def get_events_stats(events):
    """Stats for each of ``events`` keyed by event id, from two grouped counts."""
    ids = [event.id for event in events]
    if not ids:
        return {}
    registrations = dict(
        db.session.query(Registration.event_id, func.count(Registration.id))
        .filter(Registration.event_id.in_(ids))
        .group_by(Registration.event_id)
        .all()
    )
    attendances = dict(
        db.session.query(Registration.event_id, func.count(Attendance.id))
        .join(Attendance, Attendance.registration_id == Registration.id)
        .filter(Registration.event_id.in_(ids))
        .group_by(Registration.event_id)
        .all()
    )
    return {
        event.id: _stats(event, registrations.get(event.id, 0), attendances.get(event.id, 0))
        for event in events
    }


# =====================
# REGISTRATIONS
# =====================
def get_registration(event_id, user_id):
    return Registration.query.filter_by(event_id=event_id, user_id=user_id).first()


def register_for_event(event_id, user):
    event = get_event(event_id)

    if get_registration(event.id, user.id):
        raise AlreadyRegisteredError()

    if event.max_capacity is not None:
        taken = Registration.query.filter_by(event_id=event.id).count()
        if taken >= event.max_capacity:
            raise EventFullError()

    for _ in range(CODE_ATTEMPTS):
        registration = Registration(id=str(uuid.uuid4()), event_id=event.id, user_id=user.id)
        registration.qr_code_data = generate_registration_qr_data(event.id, user.id, registration.id)
        registration.backup_code = generate_backup_code()
        db.session.add(registration)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            # Either a concurrent registration won, or a generated code collided
            if get_registration(event.id, user.id):
                raise AlreadyRegisteredError()
            logger.warning("Generated code collision for event %s, retrying", event.id)
            continue
        logger.info("User %s registered for event %s", user.email, event.id)
        return registration

    raise ConflictError("Could not generate a unique registration code, please try again")


def list_event_registrations(event_id):
    event = get_event(event_id)
    return (
        Registration.query.filter_by(event_id=event.id)
        .join(User, Registration.user_id == User.id)
        .order_by(Registration.registration_date, User.full_name)
        .all()
    )


def list_user_registrations(user):
    return (
        Registration.query.filter_by(user_id=user.id)
        .join(Event)
        .order_by(Event.event_date, Event.start_time)
        .all()
    )


def get_registration_by_id(registration_id):
    registration = db.session.get(Registration, registration_id)
    if registration is None:
        raise NotFoundError("Registration not found")
    return registration


def delete_registration(registration_id):
    """Delete a registration together with its attendance record."""
    registration = get_registration_by_id(registration_id)
    event_id = registration.event_id
    db.session.delete(registration)
    db.session.commit()
    logger.info("Registration %s deleted from event %s", registration_id, event_id)
    return event_id


def find_registration_by_qr(qr_data):
    return Registration.query.filter_by(qr_code_data=qr_data).first()


def find_registration_by_backup_code(backup_code):
    return Registration.query.filter_by(backup_code=backup_code.strip().upper()).first()


# =====================
# CHECK-IN
# =====================
def check_in_attendee(code, event_id, staff):
    """Record attendance for the registration identified by ``code``.

    ``code`` is tried as a QR payload first and then as a backup code.
    Returns the new Attendance.
    """
    if not isinstance(code, str) or not isinstance(event_id, str):
        raise ValidationError("Please select an event and enter QR code or backup code")
    code = code.strip()
    if not event_id or not code:
        raise ValidationError("Please select an event and enter QR code or backup code")
    event = get_event(event_id)

    method = "qr_scan"
    registration = find_registration_by_qr(code)
    if registration is None:
        method = "backup_code"
        registration = find_registration_by_backup_code(code)
    if registration is None:
        raise InvalidCodeError()

    if registration.event_id != event.id:
        raise WrongEventError()

    attendee_name = registration.user.full_name
    if registration.attendance is not None:
        raise AlreadyCheckedInError(attendee_name)

    attendance = Attendance(
        registration_id=registration.id,
        check_in_method=method,
        checked_in_by=staff.id,
    )
    db.session.add(attendance)
    try:
        db.session.commit()
    except IntegrityError:
        # Unique registration_id: a concurrent check-in got there first
        db.session.rollback()
        raise AlreadyCheckedInError(attendee_name)

    logger.info(
        "Checked in %s for event %s via %s by %s",
        attendee_name, event.id, method, staff.email,
    )
    return attendance


def attendance_report_csv(event_id):
    registrations = list_event_registrations(event_id)
    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow([
        "Name", "Email", "Student ID", "Backup Code", "Registered At",
        "Checked In", "Check-in Time", "Method",
    ])
    for reg in registrations:
        att = reg.attendance
        writer.writerow([
            reg.user.full_name,
            reg.user.email,
            reg.user.student_id or "",
            reg.backup_code,
            reg.registration_date.isoformat() if reg.registration_date else "",
            "Yes" if att else "No",
            att.check_in_time.isoformat() if att and att.check_in_time else "",
            att.check_in_method if att else "",
        ])
    return buffer.getvalue()


# =====================
# SUPPORT MESSAGES
# =====================
def create_support_message(user, message, event_id=None, issue_type=None):
    message = (message or "").strip()
    if not message:
        raise ValidationError("Please fill in all fields")
    if issue_type and issue_type not in ISSUE_TYPES:
        raise ValidationError("Please choose a valid issue type")
    if event_id:
        get_event(event_id)

    support_message = SupportMessage(
        user_id=user.id,
        event_id=event_id or None,
        issue_type=issue_type or None,
        message=message,
        status="open",
    )
    db.session.add(support_message)
    db.session.commit()
    logger.info("Support message %s opened by %s", support_message.id, user.email)
    return support_message


def list_support_messages(user, event_id=None):
    """Admins see every message; everybody else only their own. Newest first."""
    query = SupportMessage.query
    if not user.is_admin:
        query = query.filter_by(user_id=user.id)
    if event_id:
        query = query.filter_by(event_id=event_id)
    return query.order_by(SupportMessage.created_at.desc(), SupportMessage.id).all()


def count_open_support_messages():
    return SupportMessage.query.filter_by(status="open").count()


def resolve_support_message(message_id, resolver):
    support_message = db.session.get(SupportMessage, message_id)
    if support_message is None:
        raise NotFoundError("Message not found")
    if support_message.status == "resolved":
        raise ConflictError("Message is already resolved")

    support_message.status = "resolved"
    support_message.resolved_at = datetime.now(timezone.utc)
    support_message.resolved_by = resolver.id
    db.session.commit()
    logger.info("Support message %s resolved by %s", message_id, resolver.email)
    return support_message
