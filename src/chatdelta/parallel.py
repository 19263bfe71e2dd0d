from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from loguru import logger

from chatdelta.cancellation import CancellationToken
from chatdelta.conversation import Conversation, Role
from chatdelta.errors import config_error
from chatdelta.provider import AIClient


@dataclass
class ParallelResult:
    client_name: str
    result: str = ""
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def _fan_out(
    clients: Sequence[AIClient],
    call: Callable[[AIClient], Awaitable[str]],
) -> list[ParallelResult]:
    results = [ParallelResult(client_name=client.name) for client in clients]

    async def run_one(index: int, client: AIClient) -> None:
        try:
            results[index].result = await call(client)
            logger.debug(f"Parallel slot {index} ({client.name}) completed")
        except Exception as ex:
            results[index].error = ex
            logger.warning(f"Parallel slot {index} ({client.name}) failed: {ex}")

    await asyncio.gather(*(run_one(i, c) for i, c in enumerate(clients)))
    return results


async def execute_parallel(
    clients: Sequence[AIClient],
    prompt: str,
    *,
    token: CancellationToken | None = None,
) -> list[ParallelResult]:
    """Send one prompt to every client at once.

    Results keep the order of ``clients``; one client failing does not
    affect the others.
    """
    return await _fan_out(clients, lambda client: client.send_prompt(prompt, token=token))


async def _send_conversation(
    client: AIClient,
    conversation: Conversation,
    token: CancellationToken | None,
) -> str:
    if client.supports_conversations():
        return await client.send_conversation(conversation, token=token)

    last = conversation.last()
    if last is None:
        raise config_error("empty conversation")
    if last.role != Role.USER:
        raise config_error("no user message found in conversation")
    return await client.send_prompt(last.content, token=token)


async def execute_parallel_conversation(
    clients: Sequence[AIClient],
    conversation: Conversation,
    *,
    token: CancellationToken | None = None,
) -> list[ParallelResult]:
    snapshot = conversation.copy()
    return await _fan_out(clients, lambda client: _send_conversation(client, snapshot, token))
