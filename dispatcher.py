# dispatcher.py
# Ordered fan-out of chat lines to every joined connection.
from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from history import HistoryBuffer
from messages import join_notice, leave_notice
from registry import Connection, Registry

log = logging.getLogger(__name__)


class Dispatcher:
    """Owns the registry and the history buffer of one server.

    ``admit``, ``broadcast`` and ``depart`` are plain (non-async) methods:
    on the event loop thread each one runs to completion before any other
    coroutine resumes. That is the lock that keeps membership, history and
    delivery order consistent.

    Backpressure: a recipient whose outbox is full is evicted on the spot.
    It is removed from the registry and closed; its session then shuts the
    socket down and announces the leave. Nobody else waits for it.
    """

    def __init__(self, registry: Registry, history: HistoryBuffer):
        self.registry = registry
        self.history = history

    def admit(self, conn: Connection) -> Optional[Tuple[str, ...]]:
        """Register ``conn`` and return the lines it must be shown first.

        The replay snapshot is taken before the join notice is recorded, so
        a client never gets its own join notice, and every later broadcast
        reaches it through its outbox. Returns None if the server is full.
        """
        if not self.registry.join(conn):
            return None
        replay = self.history.replay()
        self.broadcast(join_notice(conn.name), exclude=conn)
        log.info("%s joined from %s (%d online)", conn.name, conn.peer, len(self.registry))
        return replay

    def broadcast(self, message: str, exclude: Optional[Connection] = None) -> List[Connection]:
        self.history.record(message)
        evicted = []
        for conn in self.registry.snapshot():
            if conn is exclude:
                continue
            if not conn.offer(message):
                evicted.append(conn)
        for conn in evicted:
            self.evict(conn)
        return evicted

    def evict(self, conn: Connection) -> None:
        self.registry.leave(conn)
        conn.close()
        log.warning("evicted %s: outbox full (%d pending)", conn.name, conn.outbox.qsize())

    def depart(self, conn: Connection) -> None:
        self.registry.leave(conn)
        self.broadcast(leave_notice(conn.name), exclude=conn)
        log.info("%s left (%d online)", conn.name, len(self.registry))
