"""Map domain errors onto HTTP responses with an actionable reason."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from flancer.domain import errors

logger = structlog.get_logger()

STATUS_BY_ERROR: dict[type[errors.NegotiationError], int] = {
    errors.PriceOutOfRange: 400,
    errors.InvalidCounterparty: 400,
    errors.InvalidDeadline: 400,
    errors.InvalidServiceListing: 400,
    errors.UnauthorizedParty: 403,
    errors.SelfAgreementNotAllowed: 403,
    errors.NegotiationNotFound: 404,
    errors.ServiceNotFound: 404,
    errors.NotificationNotFound: 404,
    errors.RecordNotFound: 404,
    errors.ConcurrentModification: 409,
    errors.InvalidTransitionError: 409,
    errors.DuplicateRecord: 409,
    errors.IncompleteNegotiation: 422,
    errors.PartyNoLongerExists: 422,
    errors.TransientError: 503,
}


def status_for(exc: errors.NegotiationError) -> int:
    """Return the HTTP status for *exc*, walking its class hierarchy."""
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return 500


def register_error_handlers(app: FastAPI) -> None:
    """Install the ``NegotiationError`` handler on *app*."""

    @app.exception_handler(errors.NegotiationError)
    async def negotiation_error_handler(
        request: Request, exc: errors.NegotiationError
    ) -> JSONResponse:
        status = status_for(exc)
        log = logger.warning if status < 500 else logger.error
        log("Negotiation action rejected", path=request.url.path, error=exc.code, status=status)
        headers = {"Retry-After": "1"} if status in (409, 503) else None
        return JSONResponse(
            status_code=status,
            content={"error": exc.code, "message": str(exc)},
            headers=headers,
        )
