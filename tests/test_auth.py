import pytest

from auth import sign_in, validate_email
from exceptions import AuthenticationError, ValidationError
from models import User


class TestValidateEmail:
    def test_accepts_allowed_domain(self):
        validate_email("someone@nmamit.in", "nmamit.in")

    @pytest.mark.parametrize(
        "email, message",
        [
            ("", "Email is required"),
            ("someone", "Please enter a valid email address"),
            ("someone@gmail.com", "Email must end with @nmamit.in"),
            ("someone@evilnmamit.in", "Email must end with @nmamit.in"),
        ],
    )
    def test_rejects(self, email, message):
        with pytest.raises(ValidationError) as exc:
            validate_email(email, "nmamit.in")
        assert exc.value.message == message


class TestSignIn:
    def test_admin_needs_admin_password(self, app):
        with pytest.raises(AuthenticationError):
            sign_in("boss@nmamit.in", "admin", password="staff-pass")
        user = sign_in("boss@nmamit.in", "admin", password="admin-pass")
        assert user.role == "admin"
        assert user.full_name == "boss"

    def test_staff_needs_staff_password(self, app):
        with pytest.raises(AuthenticationError):
            sign_in("door@nmamit.in", "staff", password="")
        assert sign_in("door@nmamit.in", "staff", password="staff-pass").role == "staff"

    def test_participant_needs_name_only(self, app):
        with pytest.raises(ValidationError):
            sign_in("kid@nmamit.in", "participant")
        user = sign_in("Kid@nmamit.in", "participant", full_name=" Kid Ray ", student_id="4NM21")
        assert user.email == "kid@nmamit.in"
        assert user.full_name == "Kid Ray"
        assert user.student_id == "4NM21"

    def test_unknown_role(self, app):
        with pytest.raises(ValidationError):
            sign_in("kid@nmamit.in", "superuser", full_name="Kid")

    def test_repeat_sign_in_reuses_user(self, app):
        first = sign_in("kid@nmamit.in", "participant", full_name="Kid")
        second = sign_in("kid@nmamit.in", "participant", full_name="Kid Renamed")
        assert first.id == second.id
        assert User.query.count() == 1
        assert second.full_name == "Kid Renamed"

    def test_domain_is_checked_before_password(self, app):
        with pytest.raises(ValidationError):
            sign_in("boss@gmail.com", "admin", password="admin-pass")
