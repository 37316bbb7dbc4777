# config.py
# Server defaults. Every value can be overridden from the environment
# (CHAT_*) and then from the command line.
from __future__ import annotations

import argparse
import os
from typing import Optional


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


DEFAULT_HOST = os.getenv("CHAT_HOST", "0.0.0.0")
DEFAULT_PORT = _env_int("CHAT_PORT", 8989)
MAX_CLIENTS = _env_int("CHAT_MAX_CLIENTS", 10)

# per-connection outbox; a peer that falls this far behind is evicted
QUEUE_SIZE = _env_int("CHAT_QUEUE_SIZE", 64)

# 0 keeps every broadcast for replay
HISTORY_LIMIT = _env_int("CHAT_HISTORY_LIMIT", 0)

# seconds, 0 disables
IDLE_TIMEOUT = _env_float("CHAT_IDLE_TIMEOUT", 0.0)

# 0 disables the status HTTP app
HTTP_PORT = _env_int("CHAT_HTTP_PORT", 0)


def parse_port(value: str) -> int:
    """argparse type for a TCP port in 1..65535."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port: {value!r}") from None
    if not 1 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1: {n}")
    return n


def non_negative_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if n < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {n}")
    return n


def optional_timeout(value: float) -> Optional[float]:
    return value if value and value > 0 else None
