from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from lending.services.coordinator import AvailabilityConflict
from lending.services.record_pipeline import RecordChangedConcurrently, RecordNotFound
from lending.services.rental_service import RentalException
from lending.services.reservation_service import ReservationException
from lending.services.rules import BookingException, ObligationStateError
from lending.utils.log import get_logger
from lending.utils.transactions import ItemLockTimeout

log = get_logger("lending.api")

CLIENT_ERRORS = (
    AvailabilityConflict,
    ObligationStateError,
    RentalException,
    ReservationException,
    BookingException,
)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RecordNotFound)
    async def not_found_handler(request: Request, exc: RecordNotFound):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    for exc_type in CLIENT_ERRORS:

        @app.exception_handler(exc_type)
        async def client_error_handler(request: Request, exc: Exception):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)}
            )

    @app.exception_handler(ItemLockTimeout)
    @app.exception_handler(RecordChangedConcurrently)
    async def busy_handler(request: Request, exc: Exception):
        log.warning("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)}
        )

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        log.exception("Transaction failed for %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal error, nothing was saved. Please try again."},
        )
