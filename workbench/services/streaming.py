"""
Streaming chat session.

Drives one "send a prompt, receive a streamed reply" cycle:

  1. Insert the user's prompt optimistically and mark the store streaming.
  2. POST to /chat/conversations/{id}/messages/stream with the bearer token.
  3. Insert an empty assistant placeholder, then for every decoded delta
     replace it with the full accumulated text (one publish per delta).
     output_tokens is the character length of that text.
  4. On completion, clear the streaming flag and re-fetch the list and the
     conversation so server ids and token counts replace local ones.
  5. On cancellation, keep the partial text and skip the re-fetch.
  6. On failure, remove both optimistic messages and raise. This includes
     exits the session does not map to its own errors: a cancelled task,
     KeyboardInterrupt, or a subscriber that raises. The streaming flag is
     cleared on every path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import httpx

from workbench.errors import (
    ApiError,
    ConversationNotLoadedError,
    EmptyPromptError,
    StreamInProgressError,
    StreamReadError,
    StreamStartError,
)
from workbench.models import Message
from workbench.services.api_client import ApiClient
from workbench.services.chat_store import ChatStore
from workbench.services.sse import SSEFrameDecoder, content_delta

logger = logging.getLogger(__name__)


class StreamOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StreamResult:
    """How a send finished and what text it produced."""

    outcome: StreamOutcome
    content: str
    placeholder_id: str
    malformed_frames: int = 0

    @property
    def cancelled(self) -> bool:
        return self.outcome is StreamOutcome.CANCELLED


class CancellationToken:
    """Cooperative stop signal, checked between chunks and between deltas."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class StreamingChatSession:
    """
    One streamed assistant reply at a time.

    A second send while a stream is active raises StreamInProgressError.
    The stream has no read timeout; it runs until the server closes it or
    the caller cancels.
    """

    def __init__(self, api: ApiClient, chat: ChatStore, reconcile_detail: bool = True):
        """
        Args:
            api: Client whose connection pool, base URL and token are reused
            chat: Store holding the conversation being streamed into
            reconcile_detail: Re-fetch the full conversation after completion,
                not just the conversation list
        """
        self.api = api
        self.chat = chat
        self.reconcile_detail = reconcile_detail
        self._token: CancellationToken | None = None

    @property
    def is_streaming(self) -> bool:
        return self._token is not None

    def cancel(self) -> bool:
        """Signal the active stream to stop. Returns False if nothing is streaming."""
        if self._token is None:
            return False
        self._token.cancel()
        return True

    async def send(
        self,
        conversation_id: str,
        prompt: str,
        token: CancellationToken | None = None,
    ) -> StreamResult:
        """
        Send `prompt` and stream the reply into the chat store.

        Raises:
            EmptyPromptError: prompt is blank after trimming
            StreamInProgressError: another send is still running
            ConversationNotLoadedError: conversation_id is not the current conversation
            StreamStartError: no token, or the stream could not be opened
            StreamReadError: the connection failed mid-stream
        """
        content = prompt.strip()
        if not content:
            raise EmptyPromptError("Prompt is empty")

        if self._token is not None:
            raise StreamInProgressError("A reply is already streaming")

        current = self.chat.state.current_conversation
        if current is None or current.id != conversation_id:
            raise ConversationNotLoadedError(f"Conversation {conversation_id} is not loaded")

        if not self.api.config.access_token:
            raise StreamStartError("Not authenticated")

        self._token = token or CancellationToken()
        try:
            return await self._run(conversation_id, content, self._token)
        finally:
            self._token = None

    async def _run(self, conversation_id: str, content: str, token: CancellationToken) -> StreamResult:
        user_message = Message.local_user(conversation_id, content)
        placeholder = Message.placeholder(conversation_id, content)

        self.chat.append_message(conversation_id, user_message)
        self.chat.set_streaming(True)

        opened = False
        finished = False
        try:
            async with self.api.http.stream(
                "POST",
                f"/chat/conversations/{conversation_id}/messages/stream",
                json={"content": content},
                headers=self.api.headers(accept="text/event-stream"),
                timeout=httpx.Timeout(self.api.http.timeout.connect, read=None),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    self.api.ensure_success(response)

                opened = True
                self.chat.append_message(conversation_id, placeholder)
                accumulated, malformed = await self._consume(
                    response, conversation_id, placeholder.id, token
                )
            finished = True
        except (ApiError, httpx.HTTPError) as e:
            if opened:
                logger.error("Stream for %s interrupted: %s", conversation_id, e)
                raise StreamReadError(f"Stream interrupted: {e}") from e
            logger.error("Stream for %s failed to start: %s", conversation_id, e)
            raise StreamStartError(f"Streaming failed: {e}") from e
        finally:
            # Any exit other than end-of-body or a token cancel drops both
            # optimistic messages, including task cancellation.
            try:
                if not finished:
                    self.chat.remove_messages(conversation_id, {user_message.id, placeholder.id})
            finally:
                self.chat.set_streaming(False)

        if token.cancelled:
            logger.info("Stream for %s cancelled after %d chars", conversation_id, len(accumulated))
            return StreamResult(StreamOutcome.CANCELLED, accumulated, placeholder.id, malformed)

        await self._reconcile(conversation_id)
        return StreamResult(StreamOutcome.COMPLETED, accumulated, placeholder.id, malformed)

    async def _consume(
        self,
        response: httpx.Response,
        conversation_id: str,
        placeholder_id: str,
        token: CancellationToken,
    ) -> tuple[str, int]:
        """Read chunks until the body ends or the token is cancelled."""
        decoder = SSEFrameDecoder()
        accumulated = ""
        chunks = response.aiter_bytes()
        try:
            while not token.cancelled:
                try:
                    chunk = await anext(chunks)
                except StopAsyncIteration:
                    frames, done = decoder.flush(), True
                else:
                    frames, done = decoder.feed_bytes(chunk), False

                for frame in frames:
                    if token.cancelled:
                        break
                    delta = content_delta(frame)
                    if delta is None:
                        continue
                    accumulated += delta
                    self.chat.replace_message(
                        conversation_id,
                        placeholder_id,
                        content=accumulated,
                        output_tokens=len(accumulated),
                    )

                if done:
                    break
        finally:
            await chunks.aclose()
        return accumulated, decoder.malformed

    async def _reconcile(self, conversation_id: str):
        """Replace local approximations with the server's record."""
        await self.chat.load_conversations()
        current = self.chat.state.current_conversation
        if self.reconcile_detail and current is not None and current.id == conversation_id:
            await self.chat.select_conversation(conversation_id)
