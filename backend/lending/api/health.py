from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from lending.db import engine
from lending.utils.log import get_logger

router = APIRouter()
log = get_logger("lending.health")


@router.get("/health", tags=["health"])
def health():
    db_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except SQLAlchemyError:
        log.warning("Health check could not reach the database", exc_info=True)

    return {"status": "ok" if db_ok else "degraded", "db": db_ok}
