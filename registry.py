# registry.py
# Live, named connections of one running chat server.
#
# Everything here runs on the event loop thread. Methods never await, so
# each call is one atomic step relative to every other coroutine.
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)


class Connection:
    """One joined client: its stream writer, display name and outbox.

    The outbox is bounded. ``offer`` never blocks; a full outbox means the
    writer path is not keeping up and the caller decides what to do.
    """

    def __init__(self, writer: asyncio.StreamWriter, name: str, queue_size: int):
        self.writer = writer
        self.name = name
        self.peer: Optional[Any] = writer.get_extra_info("peername")
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.alive = True
        self.closed = asyncio.Event()

    def offer(self, line: str) -> bool:
        if not self.alive:
            return False
        try:
            self.outbox.put_nowait(line)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """Mark dead and wake the owning session. Safe to call repeatedly."""
        if not self.alive:
            return
        self.alive = False
        self.closed.set()

    def __repr__(self) -> str:
        return f"<Connection {self.name!r} {self.peer}>"


class Registry:
    """writer -> Connection, capped at ``capacity`` members."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._members: Dict[asyncio.StreamWriter, Connection] = {}

    def join(self, conn: Connection) -> bool:
        if conn.writer in self._members:
            return True
        if len(self._members) >= self.capacity:
            log.warning("registry full (%d), rejecting %r", self.capacity, conn)
            return False
        self._members[conn.writer] = conn
        return True

    def leave(self, conn: Connection) -> bool:
        return self._members.pop(conn.writer, None) is not None

    def snapshot(self) -> List[Connection]:
        return list(self._members.values())

    def names(self) -> List[str]:
        return [c.name for c in self._members.values()]

    @property
    def full(self) -> bool:
        return len(self._members) >= self.capacity

    def __len__(self) -> int:
        return len(self._members)

    def __contains__(self, conn: object) -> bool:
        return isinstance(conn, Connection) and self._members.get(conn.writer) is conn
