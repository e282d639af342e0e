"""Domain errors raised by the service layer.

Every error carries the message shown to the user and the HTTP status the
JSON API answers with.
"""


class SwiftAttendError(Exception):
    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(SwiftAttendError):
    status_code = 400


class AuthenticationError(SwiftAttendError):
    status_code = 401


class NotFoundError(SwiftAttendError):
    status_code = 404


class InvalidCodeError(NotFoundError):
    def __init__(self, message="Invalid QR code or backup code"):
        super().__init__(message)


class WrongEventError(SwiftAttendError):
    status_code = 409

    def __init__(self, message="This registration is not for the selected event"):
        super().__init__(message)


class ConflictError(SwiftAttendError):
    status_code = 409


class AlreadyRegisteredError(ConflictError):
    def __init__(self, message="Already registered for this event"):
        super().__init__(message)


class EventFullError(ConflictError):
    def __init__(self, message="This event has reached its maximum capacity"):
        super().__init__(message)


class AlreadyCheckedInError(ConflictError):
    def __init__(self, attendee_name):
        super().__init__(f"{attendee_name} is already checked in")
        self.attendee_name = attendee_name
