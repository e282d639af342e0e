import logging
import os

from flask import (
    Blueprint, Flask, Response, current_app, flash, jsonify, redirect,
    render_template, request, send_from_directory, url_for,
)
from flask_login import current_user, login_required, login_user, logout_user
from sqlalchemy.exc import SQLAlchemyError

import services
from auth import roles_required, sign_in
from config import Config
from exceptions import SwiftAttendError
from extensions import db, login_manager
from models import ISSUE_TYPES
from utils import delete_poster, make_qr_png, save_poster

logger = logging.getLogger(__name__)

bp = Blueprint("main", __name__)


# =====================
# APP FACTORY
# =====================
def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    db.init_app(app)
    login_manager.init_app(app)
    login_manager.login_view = "main.login"

    app.register_blueprint(bp)
    app.register_error_handler(SwiftAttendError, handle_domain_error)

    with app.app_context():
        db.create_all()

    return app


def handle_domain_error(error):
    if request.path.startswith("/api/"):
        return jsonify({"ok": False, "error": error.message}), error.status_code
    return error.message, error.status_code


def _poster_from_request():
    return save_poster(
        request.files.get("poster"),
        current_app.config["UPLOAD_FOLDER"],
        current_app.config["MAX_POSTER_SIZE"],
    )


def _discard_poster(filename):
    delete_poster(filename, current_app.config["UPLOAD_FOLDER"])


# =====================
# AUTH ROUTES
# =====================
@bp.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        try:
            user = sign_in(
                email=request.form.get("email"),
                role=request.form.get("role", "participant"),
                password=request.form.get("password"),
                full_name=request.form.get("full_name"),
                student_id=request.form.get("student_id"),
            )
        except SwiftAttendError as e:
            flash(e.message, "danger")
            return render_template("login.html", form=request.form), e.status_code
        login_user(user)
        if user.is_admin:
            return redirect(url_for("main.dashboard"))
        if user.role == "staff":
            return redirect(url_for("main.scanner"))
        return redirect(url_for("main.index"))
    return render_template("login.html", form={})


@bp.route("/logout")
@login_required
def logout():
    logout_user()
    return redirect(url_for("main.login"))


# =====================
# EVENT LISTING
# =====================
@bp.route("/")
@login_required
def index():
    events = services.list_events(current_user.role)
    stats = services.get_events_stats(events)
    return render_template("events.html", events=events, stats=stats)


@bp.route("/events/<event_id>")
@login_required
def event_detail(event_id):
    event = services.get_event(event_id)
    registration = services.get_registration(event.id, current_user.id)
    return render_template(
        "event_detail.html",
        event=event,
        registration=registration,
        stats=services.get_event_stats(event.id),
    )


@bp.route("/posters/<path:filename>")
def posters(filename):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)


# =====================
# EVENT REGISTRATION + QR
# =====================
@bp.route("/events/<event_id>/register", methods=["POST"])
@roles_required("participant")
def register_event(event_id):
    try:
        registration = services.register_for_event(event_id, current_user)
    except SwiftAttendError as e:
        flash(e.message, "danger")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Registration for event %s failed", event_id)
        flash("Failed to register for event", "danger")
    else:
        flash(
            f"Successfully registered for {registration.event.name}! "
            "Your QR code and backup code are ready.",
            "success",
        )
    return redirect(url_for("main.event_detail", event_id=event_id))


@bp.route("/my_registrations")
@roles_required("participant")
def my_registrations():
    registrations = services.list_user_registrations(current_user)
    return render_template("my_registrations.html", registrations=registrations)


@bp.route("/registrations/<registration_id>/qr.png")
@login_required
def registration_qr(registration_id):
    registration = services.get_registration_by_id(registration_id)
    if registration.user_id != current_user.id and not current_user.is_staff:
        return "Access Denied", 403
    return Response(make_qr_png(registration.qr_code_data), mimetype="image/png")


# =====================
# EVENT CRUD (ADMIN)
# =====================
@bp.route("/dashboard")
@roles_required("admin")
def dashboard():
    events = services.list_events(current_user.role)
    stats = services.get_events_stats(events)
    return render_template(
        "dashboard.html",
        events=events,
        stats=stats,
        open_messages=services.count_open_support_messages(),
    )


@bp.route("/events/new", methods=["GET", "POST"])
@roles_required("admin")
def create_event():
    if request.method == "POST":
        poster = None
        try:
            fields = services.parse_event_form(request.form)
            poster = _poster_from_request()
            event = services.create_event(current_user, poster_filename=poster, **fields)
        except SwiftAttendError as e:
            _discard_poster(poster)
            flash(e.message, "danger")
            return render_template("event_form.html", event=None, form=request.form), e.status_code
        except SQLAlchemyError:
            db.session.rollback()
            _discard_poster(poster)
            logger.exception("Creating event failed")
            flash("Failed to create event", "danger")
            return render_template("event_form.html", event=None, form=request.form), 500
        flash(f'Event "{event.name}" created successfully!', "success")
        return redirect(url_for("main.dashboard"))

    return render_template("event_form.html", event=None, form={})


@bp.route("/events/<event_id>/edit", methods=["GET", "POST"])
@roles_required("admin")
def edit_event(event_id):
    event = services.get_event(event_id)

    if request.method == "POST":
        previous_poster = event.poster_filename
        poster = None
        try:
            fields = services.parse_event_form(request.form)
            poster = _poster_from_request()
            services.update_event(event.id, poster_filename=poster, **fields)
        except SwiftAttendError as e:
            _discard_poster(poster)
            flash(e.message, "danger")
            return render_template("event_form.html", event=event, form=request.form), e.status_code
        except SQLAlchemyError:
            db.session.rollback()
            _discard_poster(poster)
            logger.exception("Updating event %s failed", event_id)
            flash("Failed to update event", "danger")
            return render_template("event_form.html", event=event, form=request.form), 500
        if poster and previous_poster != poster:
            _discard_poster(previous_poster)
        flash("Event updated", "success")
        return redirect(url_for("main.dashboard"))

    return render_template("event_form.html", event=event, form={})


@bp.route("/events/<event_id>/delete", methods=["POST"])
@roles_required("admin")
def delete_event(event_id):
    poster = services.get_event(event_id).poster_filename
    services.delete_event(event_id)
    _discard_poster(poster)
    flash("Event deleted successfully.", "success")
    return redirect(url_for("main.dashboard"))


# =====================
# PARTICIPANT MANAGEMENT
# =====================
@bp.route("/events/<event_id>/registrations")
@roles_required("admin")
def event_registrations(event_id):
    event = services.get_event(event_id)
    return render_template(
        "event_registrations.html",
        event=event,
        registrations=services.list_event_registrations(event.id),
    )


@bp.route("/registrations/<registration_id>/delete", methods=["POST"])
@roles_required("admin")
def delete_registration(registration_id):
    event_id = services.delete_registration(registration_id)
    flash("Registration deleted successfully", "success")
    return redirect(url_for("main.event_registrations", event_id=event_id))


@bp.route("/events/<event_id>/attendance.csv")
@roles_required("admin")
def download_attendance_report(event_id):
    event = services.get_event(event_id)
    return Response(
        services.attendance_report_csv(event.id),
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename=attendance_{event.id}.csv"},
    )


# =====================
# ATTENDANCE
# =====================
@bp.route("/scanner", methods=["GET", "POST"])
@roles_required("admin", "staff")
def scanner():
    events = services.list_events(current_user.role)
    selected_event_id = request.values.get("event_id", "")

    if request.method == "POST":
        try:
            attendance = services.check_in_attendee(
                request.form.get("code"), selected_event_id, current_user
            )
        except SwiftAttendError as e:
            flash(e.message, "danger")
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Check-in for event %s failed", selected_event_id)
            flash("Failed to check in attendee", "danger")
        else:
            flash(
                f"{attendance.registration.user.full_name} checked in successfully!",
                "success",
            )

    if not events:
        flash("No events found. Please ask admin to create events first.", "warning")

    return render_template("scanner.html", events=events, selected_event_id=selected_event_id)


@bp.route("/api/checkin", methods=["POST"])
@roles_required("admin", "staff")
def api_checkin():
    data = request.get_json(silent=True)
    if not data or not isinstance(data, dict):
        return jsonify({"ok": False, "error": "Invalid JSON"}), 400

    try:
        attendance = services.check_in_attendee(data.get("code"), data.get("event_id"), current_user)
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("API check-in for event %s failed", data.get("event_id"))
        return jsonify({"ok": False, "error": "Failed to check in attendee"}), 500
    return jsonify({
        "ok": True,
        "attendance_id": attendance.id,
        "attendee": attendance.registration.user.full_name,
        "method": attendance.check_in_method,
    })


@bp.route("/api/events/<event_id>/stats")
@roles_required("admin", "staff")
def api_event_stats(event_id):
    return jsonify(services.get_event_stats(event_id))


# =====================
# SUPPORT
# =====================
@bp.route("/support", methods=["GET", "POST"])
@login_required
def support():
    event_id = request.values.get("event_id") or None

    if request.method == "POST":
        try:
            services.create_support_message(
                current_user,
                request.form.get("message"),
                event_id=event_id,
                issue_type=request.form.get("issue_type"),
            )
        except SwiftAttendError as e:
            flash(e.message, "danger")
        else:
            flash(
                "Your message has been sent to admin. You will receive a response soon.",
                "success",
            )
            return redirect(url_for("main.support", event_id=event_id))

    return render_template(
        "support.html",
        messages=services.list_support_messages(current_user, event_id=event_id),
        event_id=event_id,
        issue_types=ISSUE_TYPES,
    )


@bp.route("/support/<message_id>/resolve", methods=["POST"])
@roles_required("admin")
def resolve_support(message_id):
    try:
        services.resolve_support_message(message_id, current_user)
    except SwiftAttendError as e:
        flash(e.message, "danger")
    else:
        flash("Message marked as resolved", "success")
    return redirect(url_for("main.support"))


# =====================
# RUN
# =====================
if __name__ == "__main__":
    create_app().run(debug=os.environ.get("FLASK_DEBUG", "0") == "1")
