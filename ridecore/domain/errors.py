"""
Error kinds surfaced by the trip core.

Every error carries a stable machine ``code`` and the HTTP status the API
layer answers with.  Callers decide on retries; nothing here retries.
"""


class TripError(Exception):
    code = "trip_error"
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidTransition(TripError):
    """Requested move is not legal from the current state."""

    code = "invalid_transition"
    status_code = 409


class Conflict(TripError):
    """Compare-and-swap lost a race; re-read and retry if still wanted."""

    code = "conflict"
    status_code = 409


class ProviderBusy(TripError):
    code = "provider_busy"
    status_code = 409


class HasActiveTrip(TripError):
    code = "has_active_trip"
    status_code = 409


class CodeMismatch(TripError):
    code = "code_mismatch"
    status_code = 422


class Expired(TripError):
    code = "expired"
    status_code = 410


class TariffNotFound(TripError):
    """Missing pricing configuration; the trip stays ``in_progress``."""

    code = "tariff_not_found"
    status_code = 424


class TripNotFound(TripError):
    code = "trip_not_found"
    status_code = 404


class ProviderNotFound(TripError):
    code = "provider_not_found"
    status_code = 404


class NotAuthorized(TripError):
    code = "not_authorized"
    status_code = 403


class InvalidCommand(TripError):
    code = "invalid_command"
    status_code = 422
