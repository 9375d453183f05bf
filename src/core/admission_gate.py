import logging
import threading
from contextlib import asynccontextmanager
from enum import Enum
from typing import Awaitable, Callable, Optional

from core.errors import OverloadError

logger = logging.getLogger(__name__)

CancellationCheck = Callable[[], Awaitable[bool]]


class Admission(Enum):
    ADMITTED = "admitted"
    BUSY = "busy"
    CALLER_GONE = "caller_gone"


class CallerGone(Exception):
    """Raised by ``AdmissionGate.slot`` when the caller went away before admission."""


class AdmissionGate:
    """
    Fixed-capacity, non-blocking admission control for concurrent probes.

    Callers are never queued: a request either takes a free slot immediately or
    is told the gate is busy. The capacity is fixed for the lifetime of the gate.
    """

    def __init__(self, capacity: int):
        if not isinstance(capacity, int) or capacity <= 0:
            raise ValueError(f"Admission gate capacity must be a positive integer, got {capacity!r}")
        self._capacity = capacity
        self._in_use = 0
        self._lock = threading.Lock()
        logger.info(f"AdmissionGate initialized with {capacity} slots.")

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def available(self) -> int:
        return self._capacity - self._in_use

    async def try_acquire(self, is_cancelled: Optional[CancellationCheck] = None) -> Admission:
        """
        Try to take a slot without waiting.

        Args:
            is_cancelled (Optional[CancellationCheck]): Async callable reporting
                whether the caller has gone away. Checked right before the slot
                counter, so an abandoned request neither takes a slot nor is
                counted as rejected.

        Returns:
            Admission: ADMITTED if a slot was taken, BUSY if none was free,
            CALLER_GONE if the caller went away.
        """
        if is_cancelled is not None and await is_cancelled():
            return Admission.CALLER_GONE
        with self._lock:
            if self._in_use >= self._capacity:
                return Admission.BUSY
            self._in_use += 1
        return Admission.ADMITTED

    def release(self):
        """
        Give back a slot taken by a successful ``try_acquire``.

        Raises:
            RuntimeError: If no slot is currently held.
        """
        with self._lock:
            if self._in_use <= 0:
                raise RuntimeError("AdmissionGate released more times than acquired")
            self._in_use -= 1

    @asynccontextmanager
    async def slot(self, is_cancelled: Optional[CancellationCheck] = None):
        """
        Hold a slot for the duration of the ``async with`` block.

        Raises:
            OverloadError: If no slot is free.
            CallerGone: If the caller went away before admission.
        """
        admission = await self.try_acquire(is_cancelled)
        if admission is Admission.BUSY:
            raise OverloadError("Server is too busy, try again later")
        if admission is Admission.CALLER_GONE:
            raise CallerGone()
        try:
            yield self
        finally:
            self.release()
