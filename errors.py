"""Error taxonomy shared by every component.

Each error carries the HTTP status it maps to; the application installs one
handler that renders them as ``{"message": ...}``.
"""


class StoreError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(StoreError):
    status_code = 400
    default_message = "Invalid request"


class Conflict(StoreError):
    status_code = 409
    default_message = "User already exists with this email"


class InvalidCredentials(StoreError):
    status_code = 401
    default_message = "Invalid credentials"


class Unauthenticated(StoreError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(StoreError):
    status_code = 403
    default_message = "Not authorized"


class NotFound(StoreError):
    status_code = 404
    default_message = "Not found"


class PersistenceFailure(StoreError):
    status_code = 500
    default_message = "Database error"
