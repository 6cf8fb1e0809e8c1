"""
Identifier Allocation

Monotonic integer IDs for customers and accounts. An allocator is owned by
the Ledger and handed to whatever needs new IDs; there is no shared static
counter.
"""

import threading


class IdAllocator:
    """Thread-safe monotonically increasing integer ID source"""

    def __init__(self, start: int = 1):
        if start < 1:
            raise ValueError("IDs start at 1 or above")
        self._next = start
        self._lock = threading.Lock()

    def allocate(self) -> int:
        """Return the next ID; IDs are never handed out twice"""
        with self._lock:
            value = self._next
            self._next += 1
            return value

    def peek(self) -> int:
        """The ID the next allocate() call will return"""
        with self._lock:
            return self._next
