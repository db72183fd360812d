"""Bounded log buffers and the single-slot download store."""

from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional


class RingBuffer:
    """Fixed-capacity FIFO of pre-formatted log lines.

    Appending past capacity drops the oldest line. Reading never drains.
    """

    def __init__(self, capacity: int = 50):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: Deque[str] = deque(maxlen=capacity)

    def append(self, line: str) -> None:
        self._entries.append(line)

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> List[str]:
        return list(self._entries)

    def render(self) -> str:
        """Return the buffered lines joined by newlines."""
        return "\n".join(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)


@dataclass
class DownloadedFile:
    filename: str
    content: bytes

    def as_text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


class DownloadSlot:
    """Holds the most recent download only; each store overwrites the last."""

    def __init__(self):
        self._file: Optional[DownloadedFile] = None

    def store(self, filename: str, content: bytes) -> DownloadedFile:
        self._file = DownloadedFile(filename=filename, content=content)
        return self._file

    def get(self) -> Optional[DownloadedFile]:
        return self._file

    def clear(self) -> None:
        self._file = None

    @property
    def empty(self) -> bool:
        return self._file is None
