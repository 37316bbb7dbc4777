import asyncio

import pytest

from messages import NAME_PROMPT
from registry import Connection
from tcp_server import ChatServer


class FakeWriter:
    """Enough of asyncio.StreamWriter for code that never touches the socket."""

    _next_port = 40000

    def __init__(self):
        FakeWriter._next_port += 1
        self.peer = ("127.0.0.1", FakeWriter._next_port)
        self.data = bytearray()

    def get_extra_info(self, key, default=None):
        return self.peer if key == "peername" else default

    def write(self, data):
        self.data.extend(data)

    async def drain(self):
        pass


def make_conn(name, queue_size=8):
    return Connection(FakeWriter(), name, queue_size)


def drain_outbox(conn):
    out = []
    while not conn.outbox.empty():
        out.append(conn.outbox.get_nowait())
    return out


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class ChatClient:
    def __init__(self, reader, writer):
        self.reader = reader
        self.writer = writer

    @classmethod
    async def connect(cls, port):
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        return cls(reader, writer)

    async def prompt(self, timeout=2.0):
        return await asyncio.wait_for(self.reader.readuntil(NAME_PROMPT.encode()), timeout)

    async def join(self, name):
        await self.prompt()
        await self.say(name)

    async def say(self, text):
        self.writer.write((text + "\n").encode())
        await self.writer.drain()

    async def line(self, timeout=2.0):
        raw = await asyncio.wait_for(self.reader.readline(), timeout)
        assert raw, "connection closed"
        return raw.decode().rstrip("\n")

    async def lines(self, n, timeout=2.0):
        return [await self.line(timeout) for _ in range(n)]

    async def read_to_eof(self, timeout=2.0):
        return await asyncio.wait_for(self.reader.read(), timeout)

    async def close(self):
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass


@pytest.fixture
async def start_server():
    servers = []

    async def _start(**kwargs):
        kwargs.setdefault("host", "127.0.0.1")
        kwargs.setdefault("port", 0)
        server = ChatServer(**kwargs)
        await server.start()
        servers.append(server)
        return server

    yield _start
    for server in servers:
        await server.close()


@pytest.fixture
async def clients():
    opened = []

    async def _connect(port):
        c = await ChatClient.connect(port)
        opened.append(c)
        return c

    yield _connect
    for c in opened:
        await c.close()
