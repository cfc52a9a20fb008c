"""
appkeeper - Fixed-capacity ring buffer for captured output.

Copyright (C) 2025 Andreas Vogler

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.
"""

from typing import Generic, TypeVar

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """Keeps the most recent `capacity` items, evicting the oldest on overflow.

    Not thread-safe. A Launcher only touches its buffer from the owner thread.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError(f"ring buffer capacity must be positive, got {capacity}")
        self._items: list = [None] * capacity
        self._start = 0
        self._end = 0
        self._full = False

    @property
    def capacity(self) -> int:
        return len(self._items)

    @property
    def empty(self) -> bool:
        return not self._full and self._start == self._end

    def __len__(self) -> int:
        if self._full:
            return len(self._items)
        return (self._end - self._start) % len(self._items)

    def add(self, item: T):
        capacity = len(self._items)
        if self._full:
            # Overwrite the oldest slot, start and end move together
            self._items[self._start] = item
            self._start = (self._start + 1) % capacity
            self._end = self._start
            return

        self._items[self._end] = item
        self._end = (self._end + 1) % capacity
        if self._end == self._start:
            self._full = True

    def get(self) -> list[T]:
        """Return the stored items, oldest first."""
        if self.empty:
            return []
        if self._end > self._start:
            return self._items[self._start:self._end]
        # Wrapped: tail of the list, then the head up to end
        return self._items[self._start:] + self._items[:self._end]
