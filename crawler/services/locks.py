"""Lock striping keyed by headline hash."""

from __future__ import annotations

import threading
import zlib
from contextlib import contextmanager
from typing import Iterator, List


class StripedLock:
    """A fixed pool of locks; equal keys always map to the same lock.

    Upserts of different hashes proceed in parallel while the read-modify-write
    of one hash's history stays atomic within the process.
    """

    def __init__(self, stripes: int = 64) -> None:
        if stripes < 1:
            raise ValueError("stripes must be positive")
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, key: str) -> threading.Lock:
        return self._locks[zlib.crc32(key.encode("utf-8")) % len(self._locks)]

    @contextmanager
    def guard(self, key: str) -> Iterator[None]:
        with self.lock_for(key):
            yield
