"""Conditional writes for checkout aggregates.

A repository ``add`` compares the stored version with the one the aggregate
was read at, then writes: two steps, so concurrent writers holding the same
version can both pass. Every checkout write goes through ``persist`` instead,
which runs the check and the write under one writer lock per provider. Of
several writers racing on one row exactly one succeeds, the rest get
``ExpectedVersionError``.

The memory provider commits a whole copy of its database, so the same lock
also keeps writes to different rows from overwriting each other.
"""

import threading
from collections import defaultdict

from protean import UnitOfWork
from protean.exceptions import ExpectedVersionError
from protean.utils.globals import current_domain

_registry_lock = threading.Lock()
_writer_locks: defaultdict[str, threading.RLock] = defaultdict(threading.RLock)


def writer_lock(aggregate_cls) -> threading.RLock:
    with _registry_lock:
        return _writer_locks[aggregate_cls.meta_.provider]


def persist(aggregate):
    """Write ``aggregate`` and commit at once.

    Raises ExpectedVersionError, leaving the store untouched, when the stored
    row has moved past the version ``aggregate`` was read at.
    """
    with writer_lock(type(aggregate)):
        # An explicit UoW is rolled back and popped on failure. The one
        # ``add`` opens on its own stays current after a version conflict.
        with UnitOfWork():
            return current_domain.repository_for(type(aggregate)).add(aggregate)


def save_if_current(aggregate) -> bool:
    """``persist``, returning False when a concurrent writer won the race."""
    try:
        persist(aggregate)
    except ExpectedVersionError:
        return False
    return True
