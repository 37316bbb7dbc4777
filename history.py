# history.py
# Ordered log of broadcast lines, replayed to clients as they join.
from __future__ import annotations

from collections import deque
from typing import Deque, Optional, Tuple


class HistoryBuffer:
    def __init__(self, limit: Optional[int] = None):
        # limit=None/0 keeps everything
        self.limit = limit or None
        self._items: Deque[str] = deque(maxlen=self.limit)

    def record(self, message: str) -> None:
        self._items.append(message)

    def replay(self) -> Tuple[str, ...]:
        return tuple(self._items)

    def __len__(self) -> int:
        return len(self._items)
