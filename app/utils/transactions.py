import logging
import os
from contextlib import contextmanager
from typing import Iterator

from filelock import FileLock, Timeout
from sqlalchemy.orm import Session, SessionTransactionOrigin

from app.config import settings

log = logging.getLogger(__name__)


class LockTimeout(Exception):
    pass


@contextmanager
def smart_transaction(session: Session) -> Iterator:
    """
    Context manager that begins a transaction on the given Session.
    If the caller explicitly began a transaction, start a nested SAVEPOINT
    (begin_nested) and leave the outer commit to the caller.
    Otherwise start a normal transaction (begin). A transaction the session
    only autobegan for earlier reads is committed first, so the block's
    work is always committed by the time it exits.

    The transaction commits when the block exits normally and rolls back
    when it raises; the exception is re-raised either way.
    Usage:
        with smart_transaction(db):
            ... DB work ...
    """
    current = session.get_transaction()
    if current is not None and current.origin is SessionTransactionOrigin.AUTOBEGIN:
        session.commit()
        current = None

    if current is not None:
        cm = session.begin_nested()
    else:
        cm = session.begin()
    try:
        with cm:
            yield
    except Exception as e:
        log.debug("Transaction rolled back: %s: %s", type(e).__name__, e)
        raise


def lock_path(user_id: int) -> str:
    """Lock file for a user; users share a fixed set of CART_LOCK_BUCKETS files."""
    locks_dir = os.path.join(settings.CART_LOCK_DIR, "cart_locks")
    os.makedirs(locks_dir, exist_ok=True)
    bucket = user_id % settings.CART_LOCK_BUCKETS
    return os.path.join(locks_dir, f"cart_{bucket}.lock")


@contextmanager
def user_cart_lock(user_id: int, timeout: float = None) -> Iterator:
    """
    Serialise cart mutations of one user across threads and worker processes.

    Raises LockTimeout when the lock cannot be taken within the timeout.
    """
    timeout = settings.CART_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
    lock = FileLock(lock_path(user_id))
    try:
        with lock.acquire(timeout=timeout):
            yield
    except Timeout:
        log.warning("Timed out waiting for cart lock of user %s", user_id)
        raise LockTimeout(f"Could not acquire cart lock for user {user_id}")
