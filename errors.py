"""Error taxonomy shared by services and HTTP handlers.

Services raise these; ``main.py`` maps them to ``{"success": false, "error": ...}``
with the matching status code.
"""


class ApiError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(ApiError):
    status_code = 400


class Unauthorized(ApiError):
    status_code = 401


class Forbidden(ApiError):
    status_code = 403


class NotFound(ApiError):
    status_code = 404


class PreconditionFailed(ApiError):
    status_code = 409


class WriteConflict(ApiError):
    """A versioned write lost against a concurrent writer."""

    status_code = 409


class PaymentProviderError(ApiError):
    """The payment provider answered with an error."""

    status_code = 502
