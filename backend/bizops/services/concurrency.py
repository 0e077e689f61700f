# Overview: Locking and retry helpers shared by the write workflows and aggregation.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError

from ..extensions import db


_registry_lock = threading.Lock()
# key -> [lock, holders and waiters]; an entry is dropped when the count hits 0
_keyed_locks: dict[tuple, list] = {}


@contextmanager
def keyed_lock(*key):
    """
    Serialize work on one logical key (e.g. ("target", 7)) within this process.

    Different keys never block each other. Other processes are not covered;
    there the conditional UPDATEs and last-writer-wins semantics apply.
    """
    with _registry_lock:
        entry = _keyed_locks.setdefault(key, [threading.Lock(), 0])
        entry[1] += 1
    try:
        with entry[0]:
            yield
    finally:
        with _registry_lock:
            entry[1] -= 1
            if entry[1] == 0:
                del _keyed_locks[key]


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, session=None):
    """
    Execute a read-only DB operation with retry on lock/timeout failures.

    Retries on OperationalError (busy database, lock wait timeout). Write
    workflows must NOT go through here: a partially applied sale is never
    replayed automatically.
    """
    session = session or db.session
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
