import hmac
import logging
from functools import wraps

from flask import current_app
from flask_login import current_user, login_required

from extensions import db, login_manager
from exceptions import AuthenticationError, ValidationError
from models import ROLES, User

logger = logging.getLogger(__name__)


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, user_id)


def validate_email(email, domain):
    if not email:
        raise ValidationError("Email is required")
    if "@" not in email:
        raise ValidationError("Please enter a valid email address")
    if not email.endswith("@" + domain):
        raise ValidationError(f"Email must end with @{domain}")


def _password_matches(given, expected):
    return hmac.compare_digest((given or "").encode(), (expected or "").encode())


def sign_in(email, role, password=None, full_name=None, student_id=None):
    """Check the role gate and return the (created or updated) user.

    Admin and staff need the shared password for their role. Participants
    only need a name. Everybody needs an email on the allowed domain.
    """
    email = (email or "").strip().lower()
    full_name = (full_name or "").strip()
    config = current_app.config

    validate_email(email, config["ALLOWED_EMAIL_DOMAIN"])

    if role not in ROLES:
        raise ValidationError("Please choose a valid role")
    if role == "admin" and not _password_matches(password, config["ADMIN_PASSWORD"]):
        raise AuthenticationError("Invalid admin password. Contact administrator for access.")
    if role == "staff" and not _password_matches(password, config["STAFF_PASSWORD"]):
        raise AuthenticationError("Invalid staff password. Contact administrator for access.")
    if role == "participant" and not full_name:
        raise ValidationError("Full name is required for participants.")

    user = User.query.filter_by(email=email).first()
    if user is None:
        user = User(email=email)
        db.session.add(user)

    user.full_name = full_name or user.full_name or email.split("@")[0]
    user.role = role
    if student_id:
        user.student_id = student_id.strip()

    db.session.commit()
    logger.info("Signed in %s as %s", email, role)
    return user


def roles_required(*roles):
    """Restrict a view to signed-in users holding one of ``roles``."""

    def decorator(view):
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if current_user.role not in roles:
                return "Access Denied", 403
            return view(*args, **kwargs)

        return wrapped

    return decorator
