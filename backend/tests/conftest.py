import os
import tempfile

# must be set before lending.config is imported anywhere
_tmp = tempfile.mkdtemp(prefix="lending-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp, 'test.db')}"
os.environ["LOCK_DIR"] = os.path.join(_tmp, "locks")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["RESERVATION_ENFORCE_OPENING_HOURS"] = "false"
os.environ["LOCK_TIMEOUT_SECONDS"] = "5"

import pytest  # noqa: E402

from lending.db import SessionLocal, init_db  # noqa: E402
from lending.models.item import Item  # noqa: E402


@pytest.fixture(autouse=True)
def fresh_db():
    init_db(reset=True)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_item():
    def _make(name="Catan", copies=1, status="instock", is_protected=False):
        s = SessionLocal()
        try:
            item = Item(name=name, copies=copies, status=status, is_protected=is_protected)
            s.add(item)
            s.commit()
            return item.id
        finally:
            s.close()

    return _make


@pytest.fixture
def status_of():
    """Item status as committed, read through a separate session."""

    def _status(item_id):
        s = SessionLocal()
        try:
            return s.get(Item, item_id).status
        finally:
            s.close()

    return _status
