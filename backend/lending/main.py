from contextlib import asynccontextmanager

from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lending.api.errors import register_error_handlers
from lending.api.health import router as health_router
from lending.api.routes_bookings import router as bookings_router
from lending.api.routes_items import router as items_router
from lending.api.routes_rentals import router as rentals_router
from lending.api.routes_reservations import router as reservations_router
from lending.config import settings
from lending.db import SessionLocal, init_db
from lending.services.jobs import clear_reservations, mark_overdue_bookings
from lending.utils.log import get_logger

log = get_logger("lending.main")


def _run_job(job):
    db = SessionLocal()
    try:
        job(db)
    except Exception:
        log.exception("Scheduled job %s failed", job.__name__)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    init_db()

    scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = BackgroundScheduler()
        scheduler.add_job(
            _run_job,
            "interval",
            args=[clear_reservations],
            seconds=settings.CLEAR_RESERVATIONS_INTERVAL_SECONDS,
            id="clear_reservations",
        )
        scheduler.add_job(
            _run_job,
            "interval",
            args=[mark_overdue_bookings],
            seconds=settings.OVERDUE_BOOKINGS_INTERVAL_SECONDS,
            id="mark_overdue_bookings",
        )
        scheduler.start()

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)


app = FastAPI(title="Lending Library - Backend", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.FRONTEND_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(health_router, prefix="/api", tags=["health"])

app.include_router(items_router, prefix="/api/items", tags=["items"])

app.include_router(rentals_router, prefix="/api/rentals", tags=["rentals"])

app.include_router(reservations_router, prefix="/api/reservations", tags=["reservations"])

app.include_router(bookings_router, prefix="/api/bookings", tags=["bookings"])
