"""
Tests for workbench/cli/repl.py

The REPL owns its event loop, so these tests are synchronous and drive it
through its command handlers.
"""

from __future__ import annotations

import asyncio
import signal

import httpx
import pytest

from workbench.cli.repl import ASSISTANT_PREFIX, Repl
from workbench.tests.conftest import make_conversation, make_detail, make_message

STREAM_PATH = "/chat/conversations/conv-1/messages/stream"


@pytest.fixture
def repl(config, backend):
    repl = Repl(config, transport=httpx.MockTransport(backend.handle))
    yield repl
    repl.close()


@pytest.fixture
def sigint(repl, monkeypatch):
    """Record loop signal handlers instead of installing them."""
    handlers = {}

    def add(sig, callback, *args):
        handlers[sig] = callback

    monkeypatch.setattr(repl.loop, "add_signal_handler", add)
    monkeypatch.setattr(repl.loop, "remove_signal_handler", lambda sig: handlers.pop(sig, None) is not None)
    return handlers


def _open(repl, backend, messages=None):
    backend.json("GET", "/chat/conversations/conv-1", make_detail("conv-1", messages))
    repl._run(repl.chat.select_conversation("conv-1"))


def _stream(backend, body):
    backend.route("POST", STREAM_PATH, lambda request: httpx.Response(200, content=body()))


class TestStreamingOutput:
    def test_each_delta_printed_once(self, repl, backend, sigint, capsys):
        _open(repl, backend)

        async def body():
            yield b'data: {"content":"Hi"}\n'
            yield b'data: {"content":" there"}\n'

        _stream(backend, body)
        backend.json("GET", "/chat/conversations", [make_conversation("conv-1")])
        served = [
            make_message("m1", role="user", content="Hello"),
            make_message("m2", role="assistant", content="Hi there", seconds=1),
        ]
        backend.json("GET", "/chat/conversations/conv-1", make_detail("conv-1", served))

        repl._send_message("Hello")

        out = capsys.readouterr().out
        assert out == f"{ASSISTANT_PREFIX}Hi there\n"
        assert [m.id for m in repl.current.messages] == ["m1", "m2"]
        assert sigint == {}

    def test_send_error_reported(self, repl, backend, sigint, capsys):
        _open(repl, backend)
        backend.json("POST", STREAM_PATH, {"detail": "Model unavailable"}, status=503)

        repl._send_message("Hello")

        assert "Error: Streaming failed: HTTP 503: Model unavailable" in capsys.readouterr().out
        assert repl.current.messages == []
        assert repl.chat.state.is_streaming is False


class TestInterrupt:
    def test_sigint_cancels_session(self, repl, backend, sigint, capsys):
        _open(repl, backend)
        routed = []

        async def body():
            yield b'data: {"content":"Partial"}\n'
            routed.append(sigint[signal.SIGINT])
            sigint[signal.SIGINT]()
            yield b'data: {"content":" ignored"}\n'

        _stream(backend, body)

        repl._send_message("Hello")

        assert routed == [repl.session.cancel]
        assert "  (Interrupted)" in capsys.readouterr().out
        assert repl.current.messages[-1].content == "Partial"
        assert repl.chat.state.is_streaming is False
        assert not repl.session.is_streaming
        assert sigint == {}

    def test_keyboard_interrupt_drains_pending_send(self, repl, backend, monkeypatch, capsys):
        def unsupported(sig, callback, *args):
            raise NotImplementedError

        monkeypatch.setattr(repl.loop, "add_signal_handler", unsupported)
        _open(repl, backend)

        def interrupt():
            raise KeyboardInterrupt

        async def body():
            yield b'data: {"content":"Partial"}\n'
            # Interrupt lands in the loop while the send is suspended
            asyncio.get_running_loop().call_soon(interrupt)
            await asyncio.Event().wait()

        _stream(backend, body)

        repl._send_message("Hello")

        assert "  (Interrupted)" in capsys.readouterr().out
        assert repl.current.messages == []
        assert repl.chat.state.is_streaming is False
        assert not repl.session.is_streaming
        assert not asyncio.all_tasks(repl.loop)

    def test_keyboard_interrupt_inside_send(self, repl, backend, monkeypatch, capsys):
        def unsupported(sig, callback, *args):
            raise NotImplementedError

        monkeypatch.setattr(repl.loop, "add_signal_handler", unsupported)
        _open(repl, backend)

        async def body():
            yield b'data: {"content":"Partial"}\n'
            raise KeyboardInterrupt

        _stream(backend, body)

        repl._send_message("Hello")

        assert "  (Interrupted)" in capsys.readouterr().out
        assert repl.current.messages == []
        assert repl.chat.state.is_streaming is False


class TestCommands:
    def test_new_then_list_marks_current(self, repl, backend, capsys):
        backend.json("POST", "/chat/conversations", make_conversation("conv-2", title="Plans"))
        backend.json(
            "GET",
            "/chat/conversations",
            [make_conversation("conv-2", title="Plans"), make_conversation("conv-1", title="Older")],
        )

        repl._handle_command("/new Plans")
        repl._handle_command("/list")

        out = capsys.readouterr().out
        assert "  Started: Plans" in out
        assert " *1. Plans" in out
        assert "  2. Older" in out

    def test_info_reports_server_token_stats(self, repl, backend, capsys):
        _open(repl, backend, [make_message("m1", input_tokens=3, output_tokens=5)])

        repl._handle_command("/info")

        assert "  Tokens: 3 in / 5 out (8 total)" in capsys.readouterr().out

    def test_quit(self, repl, capsys):
        repl._handle_command("/quit")
        assert repl.running is False
        assert "Goodbye." in capsys.readouterr().out
