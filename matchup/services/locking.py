"""
Matchup — Per-group mutual exclusion.

Every mutation of a group's match graph runs inside ``group_lock`` so that
the candidate pool is read and written under the same lock.  Locks are
scoped to a single group; different groups never contend.

* PostgreSQL: ``pg_advisory_xact_lock`` taken as the first statement of the
  session's transaction.  It is released by the database on commit or
  rollback, so it also serialises workers running in other processes.
* Any other dialect (SQLite in tests / single-process development): a
  process-local ``asyncio.Lock`` per event loop and group, held until the
  ``async with`` block exits.  Callers commit inside the block.
"""

from __future__ import annotations

import asyncio
import contextlib
import weakref
from typing import AsyncIterator

import structlog
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = structlog.get_logger("matchup.locking")

_ADVISORY_LOCK_SQL = text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))")

_local_locks: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def _local_lock(group_key: str) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    locks = _local_locks.setdefault(loop, {})
    lock = locks.get(group_key)
    if lock is None:
        lock = locks[group_key] = asyncio.Lock()
    return lock


@contextlib.asynccontextmanager
async def group_lock(session: AsyncSession, group_key: str) -> AsyncIterator[None]:
    """Hold the group's lock for the duration of the block."""
    dialect = session.get_bind().dialect.name

    if dialect == "postgresql":
        await session.execute(_ADVISORY_LOCK_SQL, {"lock_key": f"matchup:{group_key}"})
        logger.debug("group_lock_acquired", group_key=group_key, kind="advisory")
        yield
        return

    async with _local_lock(group_key):
        logger.debug("group_lock_acquired", group_key=group_key, kind="local")
        yield
