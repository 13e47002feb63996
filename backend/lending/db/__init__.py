import importlib
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from lending.config import settings
from lending.utils.log import get_logger

log = get_logger("lending.db")

DATABASE_URL = settings.DATABASE_URL

connect_args = {}
if DATABASE_URL.startswith("sqlite"):
    # sessions are handed across FastAPI worker threads
    connect_args["check_same_thread"] = False

engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Every model module must be imported before create_all so metadata is populated.
MODEL_MODULES = [
    "lending.models.item",
    "lending.models.rental",
    "lending.models.reservation",
    "lending.models.booking",
]


def init_db(reset: bool = False):
    """
    Initialize DB schema.

    Behavior:
      - If `reset` is true or the RESET_DB env var is set to 1/true/yes,
        drop & recreate tables.
      - Otherwise, leave existing tables in place and create missing ones.
    """
    env_reset = os.environ.get("RESET_DB", "false").lower() in ("1", "true", "yes")

    for mod in MODEL_MODULES:
        importlib.import_module(mod)

    if reset or env_reset:
        log.info("Resetting database (%s)", DATABASE_URL)
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info("Database initialized.")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
