"""
Engine error taxonomy.
Each error carries the HTTP status and error code the API layer responds with;
server.py registers a single handler for EngineError.
"""


class EngineError(Exception):
    """Base exception for quote and project lifecycle failures."""
    status_code = 500
    error_code = "ENGINE_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(EngineError):
    """Missing or malformed request data."""
    status_code = 400
    error_code = "INVALID_INPUT"


class InvalidTransition(EngineError):
    """Project status change not allowed from the current state."""
    status_code = 400
    error_code = "INVALID_TRANSITION"


class Forbidden(EngineError):
    status_code = 403
    error_code = "FORBIDDEN"


class NotFound(EngineError):
    status_code = 404
    error_code = "NOT_FOUND"


class Conflict(EngineError):
    """Duplicate email, language already present, sub-account already attached."""
    status_code = 409
    error_code = "CONFLICT"
