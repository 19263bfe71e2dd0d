import asyncio
import unittest
from types import SimpleNamespace

import anthropic
import httpx

from chatdelta.client_config import ClientConfig
from chatdelta.conversation import Conversation
from chatdelta.errors import ClientError
from chatdelta.providers.anthropic_provider import AnthropicProvider
from tests.fakes import collect

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def _status_error(status: int, message: str, error_type: str) -> anthropic.APIStatusError:
    response = httpx.Response(status, request=_REQUEST)
    body = {"type": "error", "error": {"type": error_type, "message": message}}
    return anthropic.APIStatusError(message, response=response, body=body)


class _FakeStreamResponse:
    def __init__(self, lines: list[str]):
        self._lines = lines
        self.exited = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.exited = True
        return False

    async def iter_lines(self):
        for line in self._lines:
            yield line


class _FakeMessages:
    def __init__(self, response=None, error: Exception | None = None, stream_lines: list[str] | None = None):
        self._response = response
        self._error = error
        self.calls: list[dict] = []
        self.stream_response = _FakeStreamResponse(stream_lines or [])
        self.with_streaming_response = SimpleNamespace(create=self._create_stream)

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return self._response

    def _create_stream(self, **kwargs):
        self.calls.append(kwargs)
        if self._error is not None:
            raise self._error
        return self.stream_response


def _make_provider(messages: _FakeMessages, config: ClientConfig | None = None) -> AnthropicProvider:
    provider = AnthropicProvider.__new__(AnthropicProvider)
    provider._api_key = "test-key"
    provider._model = "claude-test"
    provider._config = config or ClientConfig(retries=0)
    provider._client = SimpleNamespace(messages=messages)
    return provider


def _message(*blocks, stop_reason: str = "end_turn") -> SimpleNamespace:
    return SimpleNamespace(
        id="msg_1",
        model="claude-test-20240307",
        content=list(blocks),
        stop_reason=stop_reason,
        usage=SimpleNamespace(input_tokens=10, output_tokens=4),
    )


class AnthropicProviderCompleteTests(unittest.TestCase):
    def test_system_messages_become_system_prompt(self) -> None:
        messages = _FakeMessages(response=_message(SimpleNamespace(type="text", text="ok")))
        provider = _make_provider(messages, ClientConfig(retries=0, system_message="Config rules."))
        conversation = Conversation.from_prompt("hello", system_message="Inline rules.")
        conversation.add_assistant_message("earlier")
        conversation.add_user_message("again")

        asyncio.run(provider.send_conversation(conversation))

        kwargs = messages.calls[0]
        self.assertEqual("Config rules.\n\nInline rules.", kwargs["system"])
        self.assertEqual(["user", "assistant", "user"], [m["role"] for m in kwargs["messages"]])
        self.assertEqual(1024, kwargs["max_tokens"])
        self.assertNotIn("temperature", kwargs)

    def test_no_system_key_without_system_messages(self) -> None:
        messages = _FakeMessages(response=_message(SimpleNamespace(type="text", text="ok")))
        provider = _make_provider(messages, ClientConfig(retries=0, max_tokens=50, temperature=0.1, top_p=0.5))

        asyncio.run(provider.send_prompt("hello"))

        kwargs = messages.calls[0]
        self.assertNotIn("system", kwargs)
        self.assertEqual(50, kwargs["max_tokens"])
        self.assertEqual(0.1, kwargs["temperature"])
        self.assertEqual(0.5, kwargs["top_p"])

    def test_joins_text_blocks_and_maps_metadata(self) -> None:
        response = _message(
            SimpleNamespace(type="text", text="Hello "),
            SimpleNamespace(type="tool_use", id="t1", name="x", input={}),
            SimpleNamespace(type="text", text="there"),
            stop_reason="max_tokens",
        )
        provider = _make_provider(_FakeMessages(response=response))

        result = asyncio.run(provider.send_prompt_with_metadata("hi"))

        self.assertEqual("Hello there", result.content)
        self.assertEqual(10, result.metadata.prompt_tokens)
        self.assertEqual(4, result.metadata.completion_tokens)
        self.assertEqual(14, result.metadata.total_tokens)
        self.assertEqual("max_tokens", result.metadata.finish_reason)
        self.assertEqual("msg_1", result.metadata.request_id)

    def test_empty_content_is_missing_field(self) -> None:
        provider = _make_provider(_FakeMessages(response=_message()))
        with self.assertRaises(ClientError) as ctx:
            asyncio.run(provider.send_prompt("hi"))
        self.assertEqual("missing_field", ctx.exception.code)

    def test_overloaded_is_server_error(self) -> None:
        provider = _make_provider(_FakeMessages(error=_status_error(529, "Overloaded", "overloaded_error")))
        with self.assertRaises(ClientError) as ctx:
            asyncio.run(provider.send_prompt("hi"))
        self.assertEqual("server_error", ctx.exception.code)
        self.assertIn("Overloaded", ctx.exception.message)

    def test_unknown_model(self) -> None:
        error = _status_error(400, "model: claude-nope is not supported", "invalid_request_error")
        provider = _make_provider(_FakeMessages(error=error))
        with self.assertRaises(ClientError) as ctx:
            asyncio.run(provider.send_prompt("hi"))
        self.assertEqual("invalid_model", ctx.exception.code)

    def test_connection_error(self) -> None:
        provider = _make_provider(_FakeMessages(error=anthropic.APIConnectionError(request=_REQUEST)))
        with self.assertRaises(ClientError) as ctx:
            asyncio.run(provider.send_prompt("hi"))
        self.assertEqual("connection_failed", ctx.exception.code)


class AnthropicProviderStreamTests(unittest.TestCase):
    def test_stream_text_deltas(self) -> None:
        lines = [
            "event: message_start",
            'data: {"type":"message_start","message":{"id":"msg_1"}}',
            "",
            "event: content_block_start",
            'data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}',
            "event: ping",
            'data: {"type":"ping"}',
            "event: content_block_delta",
            'data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hi"}}',
            "event: content_block_delta",
            'data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":" you"}}',
            'data: {"type":"content_block_stop","index":0}',
            'data: {"type":"message_delta","delta":{"stop_reason":"end_turn"}}',
            'data: {"type":"message_stop"}',
        ]
        messages = _FakeMessages(stream_lines=lines)
        provider = _make_provider(messages)

        async def scenario():
            stream = await provider.stream_prompt("hi")
            chunks = await collect(stream)
            await asyncio.sleep(0)
            return chunks, stream.error

        chunks, error = asyncio.run(scenario())
        self.assertEqual(["Hi", " you", ""], [c.content for c in chunks])
        self.assertTrue(chunks[-1].finished)
        self.assertIsNone(error)
        self.assertTrue(messages.calls[0]["stream"])
        self.assertTrue(messages.stream_response.exited)

    def test_truncated_stream_still_terminates(self) -> None:
        lines = ['data: {"type":"content_block_delta","delta":{"type":"text_delta","text":"cut"}}']
        provider = _make_provider(_FakeMessages(stream_lines=lines))

        async def scenario():
            return await collect(await provider.stream_prompt("hi"))

        chunks = asyncio.run(scenario())
        self.assertEqual(["cut", ""], [c.content for c in chunks])
        self.assertTrue(chunks[-1].finished)


if __name__ == "__main__":
    unittest.main()
