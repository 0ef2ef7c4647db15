import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterable, Iterator

from vetclinic.core import config
from vetclinic.core.exceptions import SchedulingBusyError

logger = logging.getLogger(__name__)


class DoctorLockRegistry:
    """One mutex per doctor id, created on first use.

    Booking checks and writes for a doctor happen while holding that
    doctor's lock, so two requests in this process can never both see a
    slot as free. Cross-process safety comes from the row lock taken on the
    doctor inside the transaction.
    """

    def __init__(self, timeout: float | None = None):
        self.timeout = config.DOCTOR_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        self._locks: dict[int, Lock] = {}
        self._registry_lock = Lock()

    def _lock_for(self, doctor_id: int) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(doctor_id)
            if lock is None:
                lock = self._locks[doctor_id] = Lock()
            return lock

    @contextmanager
    def hold(self, doctor_ids: Iterable[int]) -> Iterator[None]:
        # Ascending order so two multi-doctor holders cannot deadlock.
        ordered = sorted({doctor_id for doctor_id in doctor_ids if doctor_id is not None})
        acquired: list[Lock] = []

        try:
            for doctor_id in ordered:
                lock = self._lock_for(doctor_id)
                if not lock.acquire(timeout=self.timeout):
                    logger.warning('Timed out waiting for schedule lock of doctor %s', doctor_id)
                    raise SchedulingBusyError()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


doctor_locks = DoctorLockRegistry()
