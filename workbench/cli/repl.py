"""REPL for Workbench chat."""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable
from typing import Any

import httpx

from workbench.config import Config
from workbench.errors import WorkbenchError
from workbench.services.api_client import ApiClient
from workbench.services.chat_store import ChatState, ChatStore
from workbench.services.streaming import StreamingChatSession

logger = logging.getLogger(__name__)

ASSISTANT_PREFIX = "  \033[32massistant:\033[0m "
USER_PREFIX = "  \033[90myou:\033[0m "


class Repl:
    """Interactive chat REPL. Plain lines are streamed to the current conversation."""

    def __init__(
        self,
        config: Config,
        conversation_id: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.loop = asyncio.new_event_loop()
        self.api = ApiClient(config, transport=transport)
        self.chat = ChatStore(self.api, config)
        self.session = StreamingChatSession(self.api, self.chat)
        self.initial_conversation_id = conversation_id
        self.running = True
        self._printed = 0

    def _run(self, awaitable: Awaitable[Any]) -> Any:
        return self.loop.run_until_complete(awaitable)

    def close(self):
        """Close the connection pool and the event loop."""
        self._run(self.api.close())
        self.loop.close()

    @property
    def current(self):
        return self.chat.state.current_conversation

    def start(self):
        """Start the REPL."""
        self._run(self.chat.load_conversations())
        if self.chat.state.error:
            print(f"Failed to load conversations: {self.chat.state.error}")

        target = self.initial_conversation_id or (self.current.id if self.current else None)
        if target:
            self._run(self.chat.select_conversation(target))
            if self.chat.state.error:
                print(f"Failed to load conversation: {self.chat.state.error}")
                self.chat.clear_error()

        if self.current:
            print(f"chat > {self.current.title}")
        else:
            print("chat > New conversation. Say something to start.")

        while self.running:
            try:
                line = input("chat > ").strip()

                if not line:
                    continue

                if line.startswith("/"):
                    self._handle_command(line)
                else:
                    self._send_message(line)

            except (EOFError, KeyboardInterrupt):
                print()
                break
            except Exception as e:
                print(f"Error: {e}")

        self.close()

    def _handle_command(self, line: str):
        """Handle REPL commands."""
        parts = line.split(maxsplit=1)
        cmd = parts[0].lower()
        arg = parts[1] if len(parts) > 1 else None

        if cmd == "/quit":
            self.running = False
            print("Goodbye.")
        elif cmd == "/list":
            self._list_conversations()
        elif cmd == "/new":
            self._new_conversation(arg)
        elif cmd == "/switch":
            if arg:
                self._switch_conversation(arg)
            else:
                print("Usage: /switch <number>")
        elif cmd == "/delete":
            if arg:
                self._delete_conversation(arg)
            else:
                print("Usage: /delete <number>")
        elif cmd == "/history":
            n = int(arg) if arg else 20
            self._show_history(n)
        elif cmd == "/info":
            self._show_info()
        elif cmd == "/help":
            self._show_help()
        else:
            print(f"Unknown command: {cmd}")
            print("Type /help for available commands.")

    # ── streaming ───────────────────────────────────────────────────────────

    def _on_state(self, state: ChatState):
        """Print the unseen tail of the streaming reply."""
        if not state.is_streaming or state.current_conversation is None:
            return
        messages = state.current_conversation.messages
        if not messages:
            return
        last = messages[-1]
        if last.role != "assistant" or not last.is_local:
            return
        tail = last.content[self._printed:]
        if tail:
            print(tail, end="", flush=True)
            self._printed = len(last.content)

    def _watch_interrupt(self) -> bool:
        """Route Ctrl-C to the session while streaming. False where unsupported."""
        try:
            self.loop.add_signal_handler(signal.SIGINT, self.session.cancel)
        except (NotImplementedError, RuntimeError):
            return False
        return True

    def _abort(self, task: asyncio.Task):
        """Cancel a send left suspended on the loop and let its cleanup run."""
        if not task.done():
            task.cancel()
            try:
                self._run(task)
            except asyncio.CancelledError:
                logger.info("Interrupted stream cancelled")
        elif not task.cancelled() and task.exception() is not None:
            logger.info("Stream ended by interrupt: %r", task.exception())

    def _send_message(self, text: str):
        """Stream a reply to `text` in the current conversation."""
        if not self.current:
            try:
                self._run(self.chat.create_conversation(text[:50]))
            except WorkbenchError:
                print(f"Failed to create conversation: {self.chat.state.error}")
                self.chat.clear_error()
                return

        self._printed = 0
        print(ASSISTANT_PREFIX, end="", flush=True)
        unsubscribe = self.chat.subscribe(self._on_state)
        watching = self._watch_interrupt()
        task = self.loop.create_task(self.session.send(self.current.id, text))
        try:
            result = self._run(task)
        except KeyboardInterrupt:
            # No loop signal handler on this platform
            self._abort(task)
            print()
            print("  (Interrupted)")
            return
        except WorkbenchError as e:
            print()
            print(f"  Error: {e}")
            return
        finally:
            unsubscribe()
            if watching:
                self.loop.remove_signal_handler(signal.SIGINT)

        print()
        if result.cancelled:
            print("  (Interrupted)")
        elif self.chat.state.error:
            print(f"  (Could not refresh conversation: {self.chat.state.error})")
            self.chat.clear_error()

    # ── conversations ───────────────────────────────────────────────────────

    def _list_conversations(self):
        self._run(self.chat.load_conversations())
        if self.chat.state.error:
            print(f"Failed to list conversations: {self.chat.state.error}")
            self.chat.clear_error()
            return

        conversations = self.chat.state.conversations
        if not conversations:
            print("  No conversations yet. Start chatting to create one.")
            return

        print("  Conversations:")
        for i, conv in enumerate(conversations[:20], 1):
            marker = "*" if self.current and conv.id == self.current.id else " "
            updated = conv.updated_at.strftime("%Y-%m-%d %H:%M") if conv.updated_at else ""
            print(f" {marker}{i}. {conv.title}  \033[90m{updated}\033[0m")

    def _pick(self, index: str):
        """Conversation summary by 1-based list position, or None."""
        try:
            idx = int(index) - 1
        except ValueError:
            print("  Invalid number.")
            return None

        conversations = self.chat.state.conversations
        if 0 <= idx < len(conversations):
            return conversations[idx]
        print("  Invalid index. Use /list to see conversations.")
        return None

    def _new_conversation(self, title: str | None):
        try:
            summary = self._run(self.chat.create_conversation(title or "New Chat"))
        except WorkbenchError:
            print(f"Failed to create conversation: {self.chat.state.error}")
            self.chat.clear_error()
            return
        print(f"  Started: {summary.title}")

    def _switch_conversation(self, index: str):
        summary = self._pick(index)
        if summary is None:
            return
        self._run(self.chat.select_conversation(summary.id))
        if self.chat.state.error:
            print(f"Failed to switch conversation: {self.chat.state.error}")
            self.chat.clear_error()
            return
        print(f"  Switched to: {summary.title}")

    def _delete_conversation(self, index: str):
        summary = self._pick(index)
        if summary is None:
            return
        try:
            self._run(self.chat.delete_conversation(summary.id))
        except WorkbenchError:
            print(f"Failed to delete conversation: {self.chat.state.error}")
            self.chat.clear_error()
            return
        print(f"  Deleted: {summary.title}")

    def _show_history(self, n: int):
        if not self.current:
            print("  No current conversation.")
            return

        recent = self.current.messages[-n:]
        if not recent:
            print("  No conversation history.")
            return

        for i, msg in enumerate(recent):
            if msg.role == "user":
                prefix = USER_PREFIX
            elif msg.role == "assistant":
                prefix = ASSISTANT_PREFIX
            else:
                continue  # Skip system messages

            print(f"{prefix}{msg.content}")

            # Blank line after assistant messages (end of exchange)
            if msg.role == "assistant" and i < len(recent) - 1:
                print()

    def _show_info(self):
        if not self.current:
            print("  No current conversation.")
            return

        stats = self.current.token_stats
        print(f"  Title: {self.current.title}")
        print(f"  Created: {self.current.created_at or 'Unknown'}")
        print(f"  Messages: {stats.message_count}")
        print(f"  Tokens: {stats.input_tokens} in / {stats.output_tokens} out ({stats.total_tokens} total)")

    def _show_help(self):
        print("""
  REPL Commands:
    /list          - Show conversations
    /new [title]   - Start a new conversation
    /switch <n>    - Switch to conversation number <n>
    /delete <n>    - Delete conversation number <n>
    /history [n]   - Show last n messages (default 20)
    /info          - Show current conversation details
    /help          - Show this help
    /quit          - Exit REPL

  Press Ctrl-C while a reply is streaming to stop it.
""")
