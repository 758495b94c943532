"""
Process-wide per-company lock registry.

Compound operations for one company never interleave inside this process;
different companies proceed independently. Cross-process exclusion comes from
SQLite's BEGIN IMMEDIATE write lock.
"""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator

_registry_lock = threading.Lock()
_company_locks: Dict[int, threading.RLock] = {}


def _lock_for(company_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _company_locks.get(company_id)
        if lock is None:
            lock = threading.RLock()
            _company_locks[company_id] = lock
        return lock


@contextmanager
def company_lock(company_id: int) -> Iterator[None]:
    lock = _lock_for(int(company_id))
    with lock:
        yield
