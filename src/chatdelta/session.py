from __future__ import annotations

from collections.abc import AsyncIterator

from loguru import logger

from chatdelta.cancellation import CancellationToken
from chatdelta.conversation import Conversation, Message, Role
from chatdelta.provider import AIClient
from chatdelta.response import AiResponse
from chatdelta.streaming import ChunkStream, StreamChunk


class ChatSession:
    """A client plus the conversation it is having.

    Every exchange is a transaction: the user message is appended, the call is
    made, and either the assistant reply is appended or the user message is
    removed again. A failed or cancelled exchange leaves the history exactly
    as it was before the call.
    """

    def __init__(self, client: AIClient, *, system_message: str | None = None):
        self._client = client
        self._conversation = Conversation()
        if system_message:
            self._conversation.add_system_message(system_message)

    @property
    def client(self) -> AIClient:
        return self._client

    def _rollback(self, message: Message) -> None:
        if self._conversation.last() is message:
            self._conversation.remove_last()
            logger.debug(f"Session rolled back user message ({len(self._conversation)} messages remain)")

    async def send(self, message: str, *, token: CancellationToken | None = None) -> str:
        user_message = self._conversation.add_user_message(message)
        try:
            reply = await self._client.send_conversation(self._conversation.copy(), token=token)
        except BaseException:
            self._rollback(user_message)
            raise
        self._conversation.add_assistant_message(reply)
        return reply

    async def send_with_metadata(
        self, message: str, *, token: CancellationToken | None = None
    ) -> AiResponse:
        user_message = self._conversation.add_user_message(message)
        try:
            response = await self._client.send_conversation_with_metadata(
                self._conversation.copy(), token=token
            )
        except BaseException:
            self._rollback(user_message)
            raise
        self._conversation.add_assistant_message(response.content)
        return response

    async def stream(self, message: str, *, token: CancellationToken | None = None) -> ChunkStream:
        """Stream a reply. The assistant message is committed only when the
        upstream stream finishes cleanly; failure or early close rolls back."""
        user_message = self._conversation.add_user_message(message)
        try:
            upstream = await self._client.stream_conversation(self._conversation.copy(), token=token)
        except BaseException:
            self._rollback(user_message)
            raise
        return ChunkStream().start(self._relay(upstream, user_message))

    async def _relay(self, upstream: ChunkStream, user_message: Message) -> AsyncIterator[StreamChunk]:
        parts: list[str] = []
        settled = False
        try:
            async for chunk in upstream:
                if not chunk.finished:
                    parts.append(chunk.content)
                    yield chunk
                    continue

                if upstream.error is not None:
                    self._rollback(user_message)
                    settled = True
                    raise upstream.error
                parts.append(chunk.content)
                self._conversation.add_assistant_message("".join(parts))
                settled = True
                yield chunk
                return
        finally:
            if not settled:
                self._rollback(user_message)
            await upstream.aclose()

    def add_message(self, message: Message) -> None:
        self._conversation.append(message)

    def history(self) -> Conversation:
        return self._conversation.copy()

    def clear(self) -> None:
        self._conversation = Conversation()

    def reset_with_system(self, system_message: str) -> None:
        self._conversation = Conversation()
        self._conversation.add_message(Role.SYSTEM, system_message)

    def is_empty(self) -> bool:
        return len(self._conversation) == 0

    def __len__(self) -> int:
        return len(self._conversation)
