import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "swiftattend-dev-secret")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", "sqlite:///" + os.path.join(BASE_DIR, "swiftattend.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared passwords for the two privileged roles
    ADMIN_PASSWORD = os.environ.get("ADMIN_PASSWORD", "change-me")
    STAFF_PASSWORD = os.environ.get("STAFF_PASSWORD", "change-me")
    ALLOWED_EMAIL_DOMAIN = os.environ.get("ALLOWED_EMAIL_DOMAIN", "nmamit.in")

    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.join(BASE_DIR, "posters"))
    MAX_POSTER_SIZE = 5 * 1024 * 1024

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "testing"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    ADMIN_PASSWORD = "admin-pass"
    STAFF_PASSWORD = "staff-pass"
    ALLOWED_EMAIL_DOMAIN = "nmamit.in"
    UPLOAD_FOLDER = os.path.join(tempfile.gettempdir(), "swiftattend-test-posters")
    LOG_LEVEL = "DEBUG"
