"""
Per-node mutex registry

Serializes get -> modify -> update sequences against one node's
MydeviceAllocationState inside this process. Entries are created on first
use and never removed.
"""

import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class PerNodeMutex:

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    def get(self, node: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(node)
            if lock is None:
                lock = threading.Lock()
                self._locks[node] = lock
            return lock

    @contextmanager
    def locked(self, node: str):
        """Hold the node's lock for the duration of the with-block"""
        lock = self.get(node)
        with lock:
            yield

    def __len__(self):
        with self._guard:
            return len(self._locks)


__all__ = ["PerNodeMutex"]
