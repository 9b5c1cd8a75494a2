"""Conversation and message models for chat."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

# Prefixes for ids minted on the client before the server has assigned one
LOCAL_USER_PREFIX = "user-"
LOCAL_ASSISTANT_PREFIX = "ai-"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """A single message in a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str
    conversation_id: str
    role: Literal["user", "assistant", "system"]
    content: str
    input_tokens: int = 0
    output_tokens: int = 0
    created_at: datetime = Field(default_factory=_now)

    @property
    def is_local(self) -> bool:
        """True for optimistic messages that the server has not assigned an id to."""
        return self.id.startswith((LOCAL_USER_PREFIX, LOCAL_ASSISTANT_PREFIX))

    @classmethod
    def local_user(cls, conversation_id: str, content: str) -> Message:
        """Optimistic copy of the user's prompt, shown before the server echoes it."""
        return cls(
            id=f"{LOCAL_USER_PREFIX}{uuid4().hex}",
            conversation_id=conversation_id,
            role="user",
            content=content,
            input_tokens=len(content),
            output_tokens=0,
        )

    @classmethod
    def placeholder(cls, conversation_id: str, prompt: str) -> Message:
        """Empty assistant message that receives streamed text."""
        return cls(
            id=f"{LOCAL_ASSISTANT_PREFIX}{uuid4().hex}",
            conversation_id=conversation_id,
            role="assistant",
            content="",
            input_tokens=len(prompt),
            output_tokens=0,
        )


class TokenStats(BaseModel):
    """Token totals for a conversation. Always the sum over its messages."""

    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    message_count: int = 0

    @classmethod
    def from_messages(cls, messages: list[Message]) -> TokenStats:
        input_tokens = sum(m.input_tokens for m in messages)
        output_tokens = sum(m.output_tokens for m in messages)
        return cls(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            message_count=len(messages),
        )


class ConversationSummary(BaseModel):
    """A conversation as it appears in the list."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    user_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ConversationDetail(ConversationSummary):
    """A conversation with its ordered messages and token totals."""

    messages: list[Message] = Field(default_factory=list)
    token_stats: TokenStats = Field(default_factory=TokenStats)

    @classmethod
    def empty(cls, summary: ConversationSummary) -> ConversationDetail:
        """Detail for a freshly created conversation."""
        return cls(**summary.model_dump())

    def with_messages(self, messages: list[Message]) -> ConversationDetail:
        """
        Return a copy holding `messages`, with token_stats recomputed.

        The receiver is never modified.
        """
        return self.model_copy(
            update={
                "messages": list(messages),
                "token_stats": TokenStats.from_messages(messages),
            }
        )


class ChatResponse(BaseModel):
    """Response of the non-streaming send endpoint."""

    message: Message
    provider: str | None = None
    model: str | None = None
