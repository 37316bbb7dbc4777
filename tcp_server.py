# tcp_server.py
# Asyncio TCP chat relay.
# Run: python tcp_server.py [port] [--host 0.0.0.0] [--http-port 5000]
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from typing import Any, Dict, Optional

import config
from dispatcher import Dispatcher
from history import HistoryBuffer
from messages import SERVER_FULL
from registry import Registry
from session import Session

log = logging.getLogger(__name__)

# seconds a session gets to finish its teardown when the server stops
SHUTDOWN_GRACE = 5.0


class ChatServer:
    """Listener plus the shared state of one chat: registry, history, dispatcher.

    Nothing here is module-global; two servers in one process are independent.
    """

    def __init__(
        self,
        host: str = config.DEFAULT_HOST,
        port: int = config.DEFAULT_PORT,
        max_clients: int = config.MAX_CLIENTS,
        queue_size: int = config.QUEUE_SIZE,
        history_limit: int = config.HISTORY_LIMIT,
        idle_timeout: Optional[float] = config.optional_timeout(config.IDLE_TIMEOUT),
    ):
        self.host = host
        self.requested_port = port
        self.queue_size = queue_size
        self.idle_timeout = idle_timeout
        self.registry = Registry(max_clients)
        self.history = HistoryBuffer(history_limit)
        self.dispatcher = Dispatcher(self.registry, self.history)
        self._server: Optional[asyncio.AbstractServer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._sessions: Dict[asyncio.Task, Session] = {}

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._server = await asyncio.start_server(self._handle_client, self.host, self.requested_port)
        sockets = ", ".join(str(s.getsockname()) for s in self._server.sockets or [])
        log.info("Listening on %s (max %d clients)", sockets, self.registry.capacity)

    @property
    def port(self) -> int:
        if self._server is None or not self._server.sockets:
            return self.requested_port
        return self._server.sockets[0].getsockname()[1]

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        async with self._server:
            await self._server.serve_forever()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        addr = writer.get_extra_info("peername")
        if self.registry.full:
            # fast path; Registry.join still has the final say
            log.warning("Server full, refusing %s", addr)
            await self._refuse(writer)
            return

        log.info("Connection from %s", addr)
        session = Session(reader, writer, self.dispatcher, self.queue_size, self.idle_timeout)
        task = asyncio.current_task()
        if task is not None:
            self._sessions[task] = session
        try:
            await session.run()
        finally:
            if task is not None:
                self._sessions.pop(task, None)
            log.info("Connection closed from %s", addr)

    async def _refuse(self, writer: asyncio.StreamWriter) -> None:
        try:
            writer.write(SERVER_FULL.encode("utf-8"))
            await writer.drain()
        except (ConnectionError, OSError) as e:
            log.debug("refusal not delivered: %r", e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionError, OSError) as e:
                log.debug("closing refused connection: %r", e)

    async def status(self) -> Dict[str, Any]:
        return {
            "count": len(self.registry),
            "capacity": self.registry.capacity,
            "users": self.registry.names(),
            "history": list(self.history.replay()),
        }

    def status_threadsafe(self, timeout: float = 5.0) -> Dict[str, Any]:
        """``status()`` for callers outside the event loop thread."""
        if self._loop is None:
            raise RuntimeError("server is not running")
        fut = asyncio.run_coroutine_threadsafe(self.status(), self._loop)
        return fut.result(timeout)

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
        # sessions finish through their own teardown; stream callback tasks
        # are only cancelled once the grace period runs out
        for session in list(self._sessions.values()):
            session.shutdown()
        if self._sessions:
            _, stuck = await asyncio.wait(list(self._sessions), timeout=SHUTDOWN_GRACE)
            for task in stuck:
                log.warning("session did not stop in %.1fs, cancelling", SHUTDOWN_GRACE)
                task.cancel()
            if stuck:
                await asyncio.gather(*stuck, return_exceptions=True)
        if self._server is not None:
            await self._server.wait_closed()
        log.info("Server stopped")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="TCP chat relay", usage="%(prog)s [port] [options]")
    ap.add_argument("port", nargs="?", type=config.parse_port, default=config.DEFAULT_PORT)
    ap.add_argument("--host", default=config.DEFAULT_HOST)
    ap.add_argument("--max-clients", type=config.positive_int, default=config.MAX_CLIENTS)
    ap.add_argument("--queue-size", type=config.positive_int, default=config.QUEUE_SIZE)
    ap.add_argument("--history-limit", type=config.non_negative_int, default=config.HISTORY_LIMIT)
    ap.add_argument("--idle-timeout", type=float, default=config.IDLE_TIMEOUT,
                    help="seconds of silence before a client is dropped (0 = never)")
    ap.add_argument("--http-port", type=config.non_negative_int, default=config.HTTP_PORT,
                    help="serve the status API on this port (0 = off)")
    return ap


def start_status_app(server: ChatServer, host: str, port: int) -> threading.Thread:
    from app import create_app

    app = create_app(server.status_threadsafe)
    t = threading.Thread(
        target=app.run,
        kwargs={"host": host, "port": port, "use_reloader": False},
        name="status-http",
        daemon=True,
    )
    t.start()
    log.info("Status API on http://%s:%d", host, port)
    return t


async def main(args: argparse.Namespace) -> int:
    server = ChatServer(
        host=args.host,
        port=args.port,
        max_clients=args.max_clients,
        queue_size=args.queue_size,
        history_limit=args.history_limit,
        idle_timeout=config.optional_timeout(args.idle_timeout),
    )
    try:
        await server.start()
    except OSError as e:
        log.error("Error starting server: %s", e)
        return 1
    if args.http_port:
        start_status_app(server, args.host, args.http_port)
    try:
        await server.serve_forever()
    finally:
        await server.close()
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    args = build_parser().parse_args()
    try:
        sys.exit(asyncio.run(main(args)))
    except KeyboardInterrupt:
        print("\nStopping server...")
