# tcp_client.py
# Line-oriented client for the chat relay.
# Run: python tcp_client.py 127.0.0.1 8989   (type "exit" to leave)
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import threading
from typing import Awaitable, Callable, TextIO

import config

log = logging.getLogger(__name__)

EXIT_COMMAND = "exit"
INPUT_PROMPT = "> "


async def print_incoming(reader: asyncio.StreamReader, out: TextIO = sys.stdout) -> None:
    # Chunks, not lines: the name prompt has no trailing newline.
    while True:
        data = await reader.read(4096)
        if not data:
            out.write("\nServer closed the connection.\n")
            out.flush()
            return
        out.write(data.decode("utf-8", errors="replace"))
        out.flush()


async def forward_input(
    writer: asyncio.StreamWriter,
    readline: Callable[[], Awaitable[str]],
    out: TextIO = sys.stdout,
) -> None:
    """Send every input line until EOF or a literal ``exit``."""
    while True:
        out.write(INPUT_PROMPT)
        out.flush()
        raw = await readline()
        if not raw:
            return
        line = raw.strip()
        if line == EXIT_COMMAND:
            return
        writer.write((line + "\n").encode("utf-8"))
        await writer.drain()


def stdin_lines(loop: asyncio.AbstractEventLoop) -> Callable[[], Awaitable[str]]:
    """Feed stdin into the loop from a daemon thread; "" marks EOF."""
    queue: asyncio.Queue = asyncio.Queue()

    def pump():
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line)
        loop.call_soon_threadsafe(queue.put_nowait, "")

    threading.Thread(target=pump, name="stdin", daemon=True).start()
    return queue.get


async def main(host: str, port: int) -> int:
    try:
        reader, writer = await asyncio.open_connection(host, port)
    except OSError as e:
        log.error("Error connecting to the server: %s", e)
        return 1

    incoming = asyncio.create_task(print_incoming(reader))
    outgoing = asyncio.create_task(forward_input(writer, stdin_lines(asyncio.get_running_loop())))
    try:
        await asyncio.wait({incoming, outgoing}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for t in (incoming, outgoing):
            t.cancel()
        writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            log.debug("closing: %r", e)
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    ap = argparse.ArgumentParser(usage="%(prog)s host port")
    ap.add_argument("host")
    ap.add_argument("port", type=config.parse_port)
    args = ap.parse_args()
    try:
        sys.exit(asyncio.run(main(args.host, args.port)))
    except KeyboardInterrupt:
        print("\nBye.")
