"""FIFO hand-off of created jobs to runners."""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timezone
from threading import Lock
from typing import List, Optional, Tuple


class InMemoryJobQueue:
    """Jobs waiting for a runner, oldest first. A job ID is held at most once."""

    def __init__(self) -> None:
        self._pending: "OrderedDict[str, datetime]" = OrderedDict()
        self._lock = Lock()

    def push(self, job_id: str) -> bool:
        """Returns False when the job is already waiting."""
        with self._lock:
            if job_id in self._pending:
                return False
            self._pending[job_id] = datetime.now(timezone.utc)
            return True

    def pop(self) -> Optional[str]:
        """Hand the oldest waiting job to the caller, or None when idle."""
        with self._lock:
            if not self._pending:
                return None
            job_id, _ = self._pending.popitem(last=False)
            return job_id

    def discard(self, job_id: str) -> bool:
        with self._lock:
            return self._pending.pop(job_id, None) is not None

    def pending(self) -> List[Tuple[str, datetime]]:
        with self._lock:
            return list(self._pending.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
