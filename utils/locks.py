"""
Per-loan mutual exclusion.

Payment mutations read a loan's whole payment set and rewrite derived fields on
every payment and on the loan, so two mutations of the same loan must not
interleave.  Within one process that is enforced here; across processes the
services additionally read the loan row with ``SELECT ... FOR UPDATE``.

Mutations of different loans take different locks and run in parallel.
"""
import threading
from contextlib import contextmanager


class LoanLockRegistry:
    """Hands out one lock per loan id, created on first use."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def get(self, loan_id):
        with self._guard:
            lock = self._locks.get(loan_id)
            if lock is None:
                # Re-entrant so a service may call another locked service for the same loan
                lock = threading.RLock()
                self._locks[loan_id] = lock
            return lock

    def discard(self, loan_id):
        """Forget the lock of a deleted loan."""
        with self._guard:
            self._locks.pop(loan_id, None)

    @contextmanager
    def hold(self, loan_id):
        lock = self.get(loan_id)
        with lock:
            yield

    def __len__(self):
        with self._guard:
            return len(self._locks)


loan_locks = LoanLockRegistry()
