"""
Matchup — Service-layer exceptions.

"No candidate available" is deliberately absent: an empty result is a normal
outcome and is returned as ``None`` / ``0`` rather than raised.
"""

from __future__ import annotations

import contextlib
import uuid
from typing import Iterator

import structlog
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

logger = structlog.get_logger("matchup.errors")


class ParticipantNotFoundError(LookupError):
    """Raised when a referenced participant does not exist."""

    def __init__(self, participant_id: uuid.UUID) -> None:
        super().__init__(f"Participant {participant_id} not found.")
        self.participant_id = participant_id


class StorageUnavailableError(RuntimeError):
    """Transient infrastructure failure.  Safe to retry: every operation is
    a no-op for participants that were already assigned."""


@contextlib.contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Translate driver-level connectivity failures and pool exhaustion into
    ``StorageUnavailableError``.

    Wraps the whole ``async with session`` block so that the session has
    already rolled back by the time the exception leaves it.
    """
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError, OSError) as exc:
        logger.warning("storage_unavailable", operation=operation, error=str(exc))
        raise StorageUnavailableError(
            f"Storage unavailable during {operation}; retry later."
        ) from exc
