import uuid
from datetime import datetime, timezone

from flask_login import UserMixin
from extensions import db

ROLES = ("admin", "staff", "participant")
CHECK_IN_METHODS = ("qr_scan", "backup_code")
ISSUE_TYPES = (
    "Registration Problem",
    "QR Code Issue",
    "Event Question",
    "Technical Issue",
    "Other",
)


def _new_id():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    full_name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    student_id = db.Column(db.String(100))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.CheckConstraint("role IN ('admin', 'staff', 'participant')", name="ck_users_role"),
    )

    @property
    def is_admin(self):
        return self.role == "admin"

    @property
    def is_staff(self):
        return self.role in ("admin", "staff")

    def __repr__(self):
        return f"<User {self.email} ({self.role})>"


class Event(db.Model):
    __tablename__ = "events"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    event_date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    location = db.Column(db.String(255), nullable=False)
    qr_code_data = db.Column(db.Text, unique=True, nullable=False)
    max_capacity = db.Column(db.Integer)
    poster_filename = db.Column(db.String(255))
    created_by = db.Column(db.String(36), db.ForeignKey("users.id"), index=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    registrations = db.relationship(
        "Registration", backref="event", cascade="all, delete-orphan"
    )
    support_messages = db.relationship("SupportMessage", backref="event")

    def __repr__(self):
        return f"<Event {self.name} on {self.event_date}>"


class Registration(db.Model):
    __tablename__ = "registrations"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    event_id = db.Column(
        db.String(36), db.ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    qr_code_data = db.Column(db.Text, unique=True, nullable=False)
    backup_code = db.Column(db.String(20), unique=True, nullable=False)
    registration_date = db.Column(db.DateTime(timezone=True), default=_utcnow)

    user = db.relationship("User", backref=db.backref("registrations", lazy=True))
    attendance = db.relationship(
        "Attendance", backref="registration", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (
        db.UniqueConstraint("event_id", "user_id", name="uq_registrations_event_user"),
    )

    @property
    def is_checked_in(self):
        return self.attendance is not None


class Attendance(db.Model):
    __tablename__ = "attendance"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    # One attendance per registration; this constraint is what rejects double check-ins
    registration_id = db.Column(
        db.String(36),
        db.ForeignKey("registrations.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    check_in_time = db.Column(db.DateTime(timezone=True), default=_utcnow)
    check_in_method = db.Column(db.String(20), nullable=False)
    checked_in_by = db.Column(db.String(36), db.ForeignKey("users.id"), index=True)

    staff = db.relationship("User", foreign_keys=[checked_in_by])

    __table_args__ = (
        db.CheckConstraint(
            "check_in_method IN ('qr_scan', 'backup_code')", name="ck_attendance_method"
        ),
    )


class SupportMessage(db.Model):
    __tablename__ = "support_messages"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    event_id = db.Column(db.String(36), db.ForeignKey("events.id"), index=True)
    issue_type = db.Column(db.String(50))
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(10), nullable=False, default="open")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    resolved_at = db.Column(db.DateTime(timezone=True))
    resolved_by = db.Column(db.String(36), db.ForeignKey("users.id"))

    user = db.relationship("User", foreign_keys=[user_id])
    resolver = db.relationship("User", foreign_keys=[resolved_by])
