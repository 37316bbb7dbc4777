import argparse
import asyncio
import io
from datetime import datetime

import pytest

import config
from conftest import FakeWriter
from messages import chat_line, join_notice, leave_notice
from tcp_client import forward_input, print_incoming
from tcp_server import build_parser


def test_chat_line_format():
    when = datetime(2024, 3, 5, 7, 8, 9)
    assert chat_line("alice", "hi", when) == "[2024-03-05 07:08:09][alice]: hi"
    assert join_notice("bob") == "bob has joined the chat"
    assert leave_notice("bob") == "bob has left the chat"


def test_port_defaults_and_positional():
    assert build_parser().parse_args([]).port == config.DEFAULT_PORT
    args = build_parser().parse_args(["9000"])
    assert args.port == 9000
    assert args.http_port == config.HTTP_PORT


@pytest.mark.parametrize("argv", [["abc"], ["0"], ["70000"], ["8000", "9000"]])
def test_bad_arguments_exit_with_usage(argv, capsys):
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(argv)
    assert exc.value.code == 2
    assert "usage:" in capsys.readouterr().err


def test_parse_port_bounds():
    assert config.parse_port("1") == 1
    assert config.parse_port("65535") == 65535
    with pytest.raises(argparse.ArgumentTypeError):
        config.parse_port("65536")


def test_optional_timeout():
    assert config.optional_timeout(0) is None
    assert config.optional_timeout(1.5) == 1.5


async def test_client_forwards_until_exit():
    writer = FakeWriter()
    lines = iter(["hello\n", "  spaced  \n", "exit\n", "never\n"])

    async def readline():
        return next(lines)

    out = io.StringIO()
    await forward_input(writer, readline, out)
    assert bytes(writer.data) == b"hello\nspaced\n"
    assert out.getvalue() == "> > > "


async def test_client_stops_on_eof():
    writer = FakeWriter()

    async def readline():
        return ""

    out = io.StringIO()
    await forward_input(writer, readline, out)
    assert bytes(writer.data) == b""
    assert out.getvalue() == "> "


async def test_client_prints_everything_received():
    reader = asyncio.StreamReader()
    reader.feed_data(b"[ENTER YOUR NAME]: ")
    reader.feed_data(b"bob has joined the chat\n")
    reader.feed_eof()
    out = io.StringIO()
    await print_incoming(reader, out)
    assert out.getvalue().startswith("[ENTER YOUR NAME]: bob has joined the chat\n")
    assert out.getvalue().endswith("Server closed the connection.\n")
