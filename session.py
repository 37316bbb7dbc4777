# session.py
# Lifecycle of one accepted TCP connection:
#   connecting -> handshaking -> active -> closing -> closed
from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from dispatcher import Dispatcher
from messages import (
    EMPTY_NAME,
    NAME_PROMPT,
    SERVER_FULL,
    WELCOME_BANNER,
    chat_line,
    decode_line,
    encode_line,
)
from registry import Connection

log = logging.getLogger(__name__)

CONNECTING = "connecting"
HANDSHAKING = "handshaking"
ACTIVE = "active"
CLOSING = "closing"
CLOSED = "closed"

# errors that end a session without touching anyone else
STREAM_ERRORS = (ConnectionError, OSError, ValueError, asyncio.TimeoutError, asyncio.IncompleteReadError)


class Session:
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        dispatcher: Dispatcher,
        queue_size: int,
        idle_timeout: Optional[float] = None,
    ):
        self.reader = reader
        self.writer = writer
        self.dispatcher = dispatcher
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout
        self.addr = writer.get_extra_info("peername")
        self.state = CONNECTING
        self.conn: Optional[Connection] = None
        self._tasks: List[asyncio.Task] = []

    async def run(self) -> None:
        try:
            conn = await self._handshake()
            if conn is not None:
                await self._active(conn)
        except STREAM_ERRORS as e:
            log.debug("session %s ended during %s: %r", self.addr, self.state, e)
        finally:
            await self.close()

    async def _handshake(self) -> Optional[Connection]:
        self.state = HANDSHAKING
        await self._send(WELCOME_BANNER + NAME_PROMPT)
        name = await self._read_line()
        if name is None:
            log.info("%s disconnected before naming itself", self.addr)
            return None
        if not name:
            await self._send(EMPTY_NAME)
            return None

        conn = Connection(self.writer, name, self.queue_size)
        replay = self.dispatcher.admit(conn)
        if replay is None:
            await self._send(SERVER_FULL)
            return None
        self.conn = conn

        # Replay goes straight to the socket. Live broadcasts queue up in the
        # outbox meanwhile and the writer path picks them up afterwards.
        for line in replay:
            self.writer.write(encode_line(line))
        await self.writer.drain()
        self.state = ACTIVE
        return conn

    async def _active(self, conn: Connection) -> None:
        self._tasks = [
            asyncio.create_task(self._reader_path(conn)),
            asyncio.create_task(self._writer_path(conn)),
            asyncio.create_task(conn.closed.wait()),
        ]
        try:
            await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for t in self._tasks:
                t.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def _reader_path(self, conn: Connection) -> None:
        while True:
            try:
                text = await self._read_line()
            except STREAM_ERRORS as e:
                log.debug("read from %s failed: %r", conn.name, e)
                return
            if text is None:
                return
            if text:
                log.debug("%s: %s", conn.name, text)
                self.dispatcher.broadcast(chat_line(conn.name, text), exclude=conn)
                # Buffered lines come back without yielding; let the writers
                # empty their outboxes before the next one.
                await asyncio.sleep(0)

    async def _writer_path(self, conn: Connection) -> None:
        while True:
            line = await conn.outbox.get()
            try:
                self.writer.write(encode_line(line))
                await self.writer.drain()
            except STREAM_ERRORS as e:
                log.debug("write to %s failed: %r", conn.name, e)
                return

    def shutdown(self) -> None:
        """Make ``run`` return on its own, used when the server stops."""
        if self.conn is not None:
            self.conn.close()
        if self.state in (CONNECTING, HANDSHAKING):
            # still waiting on the peer for a name or the replay drain
            transport = self.writer.transport
            if transport is not None:
                transport.abort()

    async def _read_line(self) -> Optional[str]:
        """Next trimmed line, or None at end of stream."""
        if self.idle_timeout:
            raw = await asyncio.wait_for(self.reader.readline(), self.idle_timeout)
        else:
            raw = await self.reader.readline()
        if not raw:
            return None
        return decode_line(raw)

    async def _send(self, text: str) -> None:
        self.writer.write(text.encode("utf-8"))
        await self.writer.drain()

    async def close(self) -> None:
        if self.state in (CLOSING, CLOSED):
            return
        self.state = CLOSING
        if self.conn is not None:
            self.conn.close()
            self.dispatcher.depart(self.conn)
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            log.debug("closing %s: %r", self.addr, e)
        self.state = CLOSED
