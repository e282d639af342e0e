import os
import secrets
import string
import time
import uuid
from io import BytesIO

import qrcode
from werkzeug.utils import secure_filename

from exceptions import ValidationError

BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits
BACKUP_CODE_LENGTH = 8


def _millis():
    return int(time.time() * 1000)


def generate_backup_code():
    return "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(BACKUP_CODE_LENGTH))


def generate_registration_qr_data(event_id, user_id, registration_id):
    return f"SWIFTATTEND_{event_id}_{user_id}_{registration_id}_{_millis()}"


def generate_event_qr_data():
    return f"event_{_millis()}_{secrets.token_hex(5)}"


def make_qr_png(data):
    """Render ``data`` as a QR code and return the PNG bytes."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def save_poster(file, upload_folder, max_size):
    """Validate an uploaded poster and store it under ``upload_folder``.

    Returns the stored filename, or None when no file was submitted.
    """
    if file is None or not file.filename:
        return None

    if not (file.mimetype or "").startswith("image/"):
        raise ValidationError("Please select a valid image file")

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    if size > max_size:
        raise ValidationError(f"Image size must be less than {max_size // (1024 * 1024)}MB")

    filename = f"{uuid.uuid4().hex}_{secure_filename(file.filename)}"
    os.makedirs(upload_folder, exist_ok=True)
    file.save(os.path.join(upload_folder, filename))
    return filename


def delete_poster(filename, upload_folder):
    if not filename:
        return
    path = os.path.join(upload_folder, filename)
    if os.path.exists(path):
        os.remove(path)
