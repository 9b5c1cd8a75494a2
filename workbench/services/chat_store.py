"""Chat state: conversation list, the loaded conversation, and the actions on them."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from workbench.config import Config
from workbench.errors import WorkbenchError, error_detail
from workbench.models import ConversationDetail, ConversationSummary, Message
from workbench.services.api_client import ApiClient
from workbench.services.store import Store

logger = logging.getLogger(__name__)

# Slices written to the config file between runs
PERSISTED_FIELDS = {"conversations", "current_conversation"}


class ChatState(BaseModel):
    """Everything the chat UI renders."""

    model_config = ConfigDict(frozen=True)

    conversations: list[ConversationSummary] = Field(default_factory=list)
    current_conversation: ConversationDetail | None = None
    is_loading: bool = False
    is_streaming: bool = False
    error: str | None = None


class ChatStore(Store[ChatState]):
    """
    Owns the conversation list and the single active ConversationDetail.

    Load and select failures are recorded in state.error. Create, send and
    delete failures are recorded and re-raised.
    """

    def __init__(self, api: ApiClient, config: Config | None = None):
        super().__init__(ChatState())
        self.api = api
        self.config = config
        self._restore()

    def _restore(self):
        if not self.config:
            return
        saved = self.config.get_slice("chat")
        if not saved:
            return
        try:
            self._state = ChatState(**saved)
        except ValidationError:
            logger.warning("ChatStore: discarding unreadable persisted chat state")

    def _persist(self):
        if not self.config:
            return
        self.config.set_slice(
            "chat", self.state.model_dump(mode="json", include=PERSISTED_FIELDS)
        )

    def _is_current(self, conversation_id: str) -> bool:
        current = self.state.current_conversation
        return current is not None and current.id == conversation_id

    # ── actions ─────────────────────────────────────────────────────────────

    async def load_conversations(self):
        self.set(is_loading=True, error=None)
        try:
            conversations = await self.api.list_conversations()
        except WorkbenchError as e:
            logger.error("Failed to load conversations: %s", e)
            self.set(is_loading=False, error=error_detail(e, "Failed to load conversations"))
            return
        self.set(conversations=conversations, is_loading=False)
        self._persist()

    async def create_conversation(self, title: str | None = None) -> ConversationSummary:
        """Create a conversation, put it first in the list and make it current."""
        self.set(is_loading=True, error=None)
        try:
            summary = await self.api.create_conversation(title)
        except WorkbenchError as e:
            logger.error("Failed to create conversation: %s", e)
            self.set(is_loading=False, error=error_detail(e, "Failed to create conversation"))
            raise
        self.set(
            conversations=[summary, *self.state.conversations],
            current_conversation=ConversationDetail.empty(summary),
            is_loading=False,
        )
        self._persist()
        return summary

    async def select_conversation(self, conversation_id: str):
        """Fetch a conversation and make it current. Server token_stats are trusted."""
        self.set(is_loading=True, error=None)
        try:
            detail = await self.api.get_conversation(conversation_id)
        except WorkbenchError as e:
            logger.error("Failed to load conversation %s: %s", conversation_id, e)
            self.set(is_loading=False, error=error_detail(e, "Failed to load conversation"))
            return
        self.set(current_conversation=detail, is_loading=False)
        self._persist()

    async def send_message(self, conversation_id: str, content: str) -> Message:
        """Send without streaming and append the returned message."""
        self.set(is_loading=True, error=None)
        try:
            message = await self.api.send_message(conversation_id, content)
        except WorkbenchError as e:
            logger.error("Failed to send message to %s: %s", conversation_id, e)
            self.set(is_loading=False, error=error_detail(e, "Failed to send message"))
            raise
        self.append_message(conversation_id, message)
        self.set(is_loading=False)
        self._persist()
        return message

    async def delete_conversation(self, conversation_id: str):
        """Delete a conversation. Clears the current pointer only if it was the one deleted."""
        self.set(is_loading=True, error=None)
        try:
            await self.api.delete_conversation(conversation_id)
        except WorkbenchError as e:
            logger.error("Failed to delete conversation %s: %s", conversation_id, e)
            self.set(is_loading=False, error=error_detail(e, "Failed to delete conversation"))
            raise
        current = self.state.current_conversation
        self.set(
            conversations=[c for c in self.state.conversations if c.id != conversation_id],
            current_conversation=None if self._is_current(conversation_id) else current,
            is_loading=False,
        )
        self._persist()

    def clear_error(self):
        self.set(error=None)

    # ── message-level updates ───────────────────────────────────────────────
    # Each returns False (and changes nothing) when the conversation is no
    # longer the current one.

    def append_message(self, conversation_id: str, message: Message) -> bool:
        if not self._is_current(conversation_id):
            return False
        current = self.state.current_conversation
        self.set(current_conversation=current.with_messages([*current.messages, message]))
        return True

    def replace_message(self, conversation_id: str, message_id: str, **changes) -> bool:
        """Swap one message for a copy carrying `changes`."""
        if not self._is_current(conversation_id):
            return False
        current = self.state.current_conversation
        messages = [
            m.model_copy(update=changes) if m.id == message_id else m
            for m in current.messages
        ]
        self.set(current_conversation=current.with_messages(messages))
        return True

    def remove_messages(self, conversation_id: str, message_ids: set[str]) -> bool:
        if not self._is_current(conversation_id):
            return False
        current = self.state.current_conversation
        kept = [m for m in current.messages if m.id not in message_ids]
        self.set(current_conversation=current.with_messages(kept))
        return True

    def set_streaming(self, streaming: bool):
        self.set(is_streaming=streaming)
        if not streaming:
            self._persist()
