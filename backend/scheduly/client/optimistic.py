"""Optimistic mutations: apply locally, confirm remotely, undo on failure.

One network attempt per call. Attempts are tracked per entity key; when a newer
attempt on the same key starts, the older attempt's outcome is neither applied
nor rolled back. A cancelled attempt is rolled back on failure but its success
is not applied.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Hashable, Optional

logger = logging.getLogger(__name__)

CONFLICT_STATUSES = (409, 422)


class MutationPhase(str, Enum):
    IDLE = "idle"
    APPLYING_LOCAL = "applying_local"
    AWAITING_REMOTE = "awaiting_remote"
    SUCCESS = "success"
    CONFLICT = "conflict"
    ERROR = "error"
    SETTLED = "settled"


@dataclass
class UndoToken:
    """The value replaced by a local change and how to put it back."""

    value: Any
    restore: Callable[[], None]

    def rollback(self) -> None:
        self.restore()


def is_conflict(error: BaseException) -> bool:
    return getattr(error, "status_code", None) in CONFLICT_STATUSES


PhaseCallback = Callable[[MutationPhase, Optional[BaseException]], None]


class OptimisticExecutor:
    def __init__(self) -> None:
        self._serials = itertools.count(1)
        self._attempts: dict[Hashable, int] = {}
        self._superseded: set[int] = set()
        self._lock = threading.Lock()

    def _begin(self, key: Hashable) -> int:
        with self._lock:
            serial = next(self._serials)
            previous = self._attempts.get(key)
            if previous is not None:
                self._superseded.add(previous)
            self._attempts[key] = serial
            return serial

    def _is_current(self, key: Hashable, serial: int) -> bool:
        with self._lock:
            return self._attempts.get(key) == serial

    def _is_superseded(self, serial: int) -> bool:
        with self._lock:
            return serial in self._superseded

    def _finish(self, key: Hashable, serial: int) -> None:
        with self._lock:
            self._superseded.discard(serial)
            if self._attempts.get(key) == serial:
                del self._attempts[key]

    def cancel(self, key: Hashable) -> bool:
        """Forget the in-flight attempt on ``key``.

        A cancelled attempt that succeeds is not applied; one that fails is
        still rolled back.
        """
        with self._lock:
            return self._attempts.pop(key, None) is not None

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._attempts

    def run(
        self,
        key: Hashable,
        *,
        request: Callable[[], Any],
        apply_local: Optional[Callable[[], Optional[UndoToken]]] = None,
        on_success: Optional[Callable[[Any], Any]] = None,
        on_conflict: Optional[Callable[[BaseException], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        refetch: Optional[Callable[[BaseException], Any]] = None,
        on_settled: Optional[Callable[[], None]] = None,
        on_phase: Optional[PhaseCallback] = None,
    ) -> Any:
        """Run one optimistic mutation and return ``on_success``'s result.

        On failure the local change is undone, ``on_conflict`` plus ``refetch``
        (status 409/422) or ``on_error`` run, and the error is re-raised.
        """

        def phase(value: MutationPhase, error: Optional[BaseException] = None) -> None:
            if on_phase is not None:
                on_phase(value, error)

        serial = self._begin(key)
        undo: Optional[UndoToken] = None
        try:
            phase(MutationPhase.APPLYING_LOCAL)
            if apply_local is not None:
                undo = apply_local()
            phase(MutationPhase.AWAITING_REMOTE)
            payload = request()
        except Exception as error:
            if self._is_superseded(serial):
                logger.debug(f"Ignoring failure of superseded attempt on {key!r}: {error}")
                raise
            if undo is not None:
                logger.warning(f"Rolling back optimistic change on {key!r}: {error}")
                try:
                    undo.rollback()
                except Exception as rollback_error:
                    logger.warning(f"Rollback on {key!r} failed: {rollback_error}", exc_info=True)
            if is_conflict(error):
                phase(MutationPhase.CONFLICT, error)
                if on_conflict is not None:
                    on_conflict(error)
                if refetch is not None:
                    try:
                        refetch(error)
                    except Exception as refetch_error:
                        logger.warning(f"Refetch after conflict on {key!r} failed: {refetch_error}")
            else:
                phase(MutationPhase.ERROR, error)
                if on_error is not None:
                    on_error(error)
            raise
        else:
            if not self._is_current(key, serial):
                logger.debug(f"Discarding result of superseded attempt on {key!r}")
                return payload
            phase(MutationPhase.SUCCESS)
            return on_success(payload) if on_success is not None else payload
        finally:
            self._finish(key, serial)
            phase(MutationPhase.SETTLED)
            if on_settled is not None:
                try:
                    on_settled()
                except Exception as settled_error:
                    logger.warning(f"Settled callback on {key!r} failed: {settled_error}", exc_info=True)
