"""Shared holder for the current authenticated client."""
import threading
from typing import Generic, TypeVar

T = TypeVar("T")


class ClientSlot(Generic[T]):
    """
    Single-writer, multi-reader cell for the current client.

    The scheduler is the only writer. Readers call ``get()`` once per use
    cycle and must not keep the result across cycles, since the value may
    be swapped between ticks. A reader always observes a fully constructed
    client: the new value is built before ``swap`` and installed under the
    lock in one assignment.
    """

    def __init__(self, initial: T):
        self._lock = threading.Lock()
        self._value = initial
        self._generation = 0

    def get(self) -> T:
        with self._lock:
            return self._value

    def swap(self, new: T) -> T:
        """
        Install ``new`` as the current value.

        Returns:
            The value it replaced
        """
        with self._lock:
            old = self._value
            self._value = new
            self._generation += 1
            return old

    @property
    def generation(self) -> int:
        """Number of swaps performed so far."""
        with self._lock:
            return self._generation
