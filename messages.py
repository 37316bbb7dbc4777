# messages.py
# Texts the server puts on the wire and the chat line format.
from __future__ import annotations

from datetime import datetime
from typing import Optional

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

NAME_PROMPT = "[ENTER YOUR NAME]: "
EMPTY_NAME = "Name cannot be empty.\n"
SERVER_FULL = "Server is full. Try again later.\n"

WELCOME_BANNER = (
    "Welcome to TCP-Chat!\n"
    "         _nnnn_\n"
    "        dGGGGMMb\n"
    "       @p~qp~~qMb\n"
    "       M|@||@) M|\n"
    "       @,----.JM|\n"
    "      JS^\\__/  qKL\n"
    "     dZP        qKRb\n"
    "    dZP          qKKb\n"
    "   fZP            SMMb\n"
    "   HZM            MMMM\n"
    "   FqM            MMMM\n"
    " __| \".        |\\dS\"qML\n"
    " |    `.       | `' \\Zq\n"
    "_)      \\.___.,|     .'\n"
    "\\____   )MMMMMP|   .'\n"
    "     `-'       `--'\n"
)


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime(TIMESTAMP_FORMAT)


def chat_line(name: str, body: str, now: Optional[datetime] = None) -> str:
    """Format one chat line as ``[<timestamp>][<name>]: <body>``."""
    return f"[{timestamp(now)}][{name}]: {body}"


def join_notice(name: str) -> str:
    return f"{name} has joined the chat"


def leave_notice(name: str) -> str:
    return f"{name} has left the chat"


def encode_line(text: str) -> bytes:
    return (text + "\n").encode("utf-8")


def decode_line(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace").strip()
