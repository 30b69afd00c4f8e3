"""Rate limiting (slowapi) and the JSON error envelope for trip errors."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from ridecore.config import settings
from ridecore.domain.errors import TripError

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit])


async def trip_error_handler(request: Request, exc: TripError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "detail": exc.message},
    )
