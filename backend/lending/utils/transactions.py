import os
from contextlib import ExitStack, contextmanager
from typing import Iterable, Iterator, Optional

from filelock import FileLock, Timeout
from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransactionOrigin

from lending.config import settings


class UncommittedChanges(RuntimeError):
    """The session has writes of its own that a locked write would commit."""


class ItemLockTimeout(Exception):
    def __init__(self, item_id: int):
        super().__init__(f"Could not acquire lock for item {item_id}; try again")
        self.item_id = item_id


_FLUSHED = "lending_flushed_writes"


@event.listens_for(Session, "after_flush")
def _mark_flushed(session, flush_context):
    session.info[_FLUSHED] = True


@event.listens_for(Session, "after_transaction_end")
def _clear_flushed(session, transaction):
    if transaction.parent is None:
        session.info.pop(_FLUSHED, None)


def has_pending_writes(session: Session) -> bool:
    """Unflushed changes, or flushed ones not yet committed."""
    return bool(
        session.new or session.dirty or session.deleted or session.info.get(_FLUSHED)
    )


@contextmanager
def smart_transaction(session: Session) -> Iterator:
    """
    Begin a transaction on the given Session.

    - A transaction the session only auto-began for earlier reads, with no
      pending writes, is committed first so the block below owns a real
      top-level transaction. Pending writes are never committed here.
    - A transaction the caller opened explicitly, or pending writes of the
      caller, are kept; the block runs in a nested SAVEPOINT (begin_nested)
      and the caller owns the outer commit.
    - Otherwise a top-level transaction is begun; it commits on exit and
      rolls back if the block raises.
    Usage:
        with smart_transaction(db):
            ... DB work ...
    """
    current = session.get_transaction()
    if (
        current is not None
        and current.origin is SessionTransactionOrigin.AUTOBEGIN
        and not has_pending_writes(session)
    ):
        session.commit()
    if session.in_transaction() or has_pending_writes(session):
        # begin_nested opens the outer transaction first when there is none
        cm = session.begin_nested()
    else:
        cm = session.begin()
    with cm:
        yield


def _lock_path(item_id: int) -> str:
    return os.path.join(settings.LOCK_DIR, f"item_{item_id}.lock")


@contextmanager
def item_locks(
    item_ids: Iterable[int], timeout: Optional[float] = None
) -> Iterator[None]:
    """
    Hold one file lock per item for the duration of the block.
    Locks are taken in ascending id order so two writers touching overlapping
    item sets can't deadlock each other.
    """
    ids = sorted({int(i) for i in item_ids})
    if timeout is None:
        timeout = settings.LOCK_TIMEOUT_SECONDS
    os.makedirs(settings.LOCK_DIR, exist_ok=True)
    with ExitStack() as stack:
        for item_id in ids:
            lock = FileLock(_lock_path(item_id))
            try:
                stack.enter_context(lock.acquire(timeout=timeout))
            except Timeout:
                raise ItemLockTimeout(item_id)
        yield


@contextmanager
def locked_transaction(
    session: Session, item_ids: Iterable[int], timeout: Optional[float] = None
) -> Iterator[None]:
    """
    Item locks around a transaction: the locks are released only after the
    transaction has committed or rolled back, so no other writer can observe
    the availability count between check and write.

    Refuses to run on a session with pending writes: those would only be
    committed after the locks are gone, or not at all.
    """
    if has_pending_writes(session):
        raise UncommittedChanges(
            "Session has uncommitted changes; commit or roll back before a locked write"
        )
    with item_locks(item_ids, timeout=timeout):
        with smart_transaction(session):
            yield
