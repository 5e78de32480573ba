"""
Guard against running the same mutating action twice at once, e.g. a
double-clicked "Place Order".
"""
import threading
from contextlib import contextmanager
from typing import Hashable, Iterator, Set

from errors import DuplicateSubmissionError


class InFlightGuard:
    def __init__(self):
        self._lock = threading.Lock()
        self._active: Set[Hashable] = set()

    def is_active(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._active

    @contextmanager
    def hold(self, key: Hashable, message: str = "This action is already in progress") -> Iterator[None]:
        with self._lock:
            if key in self._active:
                raise DuplicateSubmissionError(message)
            self._active.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(key)
