import json

import httpx
import pytest

from tinyagents.llm.anthropic import AnthropicProvider
from tinyagents.llm.types import (
    ChatRequest,
    EmbedRequest,
    Message,
    ProviderError,
    Role,
    ToolCall,
    ToolSpec,
)

BASE = "http://anthropic.test"
MODEL = "claude-3-5-sonnet-20241022"


def make_provider(handler, seen=None, **kwargs):
    def wrapped(request):
        if seen is not None:
            seen.append(request)
        return handler(request)

    client = httpx.Client(transport=httpx.MockTransport(wrapped))
    return AnthropicProvider(api_key="placeholder", base_url=BASE, http_client=client, **kwargs)


def sse(event, data):
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


def sse_response(events):
    body = "".join(sse(name, data) for name, data in events).encode("utf-8")
    return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})


def chat_json_response(_request):
    return httpx.Response(
        200,
        json={
            "id": "msg_1",
            "type": "message",
            "role": "assistant",
            "model": MODEL,
            "content": [{"type": "text", "text": "Hello!"}],
            "stop_reason": "end_turn",
            "stop_sequence": None,
            "usage": {"input_tokens": 10, "output_tokens": 5},
        },
    )


def test_chat():
    seen = []
    provider = make_provider(chat_json_response, seen)
    out = provider.chat(
        ChatRequest(
            model=MODEL,
            messages=[
                Message(Role.SYSTEM, "You are helpful."),
                Message(Role.USER, "Hi"),
            ],
        )
    )
    assert seen[0].url.path == "/v1/messages"
    body = json.loads(seen[0].content)
    assert body["system"] == [{"type": "text", "text": "You are helpful."}]
    assert all(m["role"] != "system" for m in body["messages"])
    assert out.message.content == "Hello!"
    assert out.message.role == Role.ASSISTANT
    assert out.finish_reason == "end_turn"
    assert out.usage is not None
    assert (out.usage.prompt_tokens, out.usage.completion_tokens, out.usage.total_tokens) == (10, 5, 15)


def test_chat_sends_api_key_and_default_max_tokens():
    seen = []
    provider = make_provider(chat_json_response, seen)
    provider.chat(ChatRequest(model=MODEL, messages=[Message(Role.USER, "Hi")]))
    assert seen[0].headers["x-api-key"] == "placeholder"
    body = json.loads(seen[0].content)
    assert body["max_tokens"] == 1024
    assert "stream" not in body


def test_chat_request_shapes_tools_and_tool_messages():
    seen = []
    provider = make_provider(chat_json_response, seen)
    provider.chat(
        ChatRequest(
            model=MODEL,
            max_tokens=50,
            temperature=0.5,
            stop=["END"],
            messages=[
                Message(Role.USER, "look up abc"),
                Message(
                    Role.ASSISTANT,
                    "",
                    tool_calls=[ToolCall(id="toolu_1", name="lookup", arguments='{"q":"abc"}')],
                ),
                Message(Role.TOOL, "found", tool_call_id="toolu_1"),
            ],
            tools=[
                ToolSpec(
                    name="lookup",
                    description="Look things up",
                    schema='{"type":"object","properties":{"q":{"type":"string"}},"required":["q"]}',
                )
            ],
        )
    )
    body = json.loads(seen[0].content)
    assert body["max_tokens"] == 50
    assert body["temperature"] == 0.5
    assert body["stop_sequences"] == ["END"]
    assert body["messages"][1] == {
        "role": "assistant",
        "content": [{"type": "tool_use", "id": "toolu_1", "name": "lookup", "input": {"q": "abc"}}],
    }
    tool_msg = body["messages"][2]
    assert tool_msg["role"] == "user"
    assert tool_msg["content"][0]["type"] == "tool_result"
    assert tool_msg["content"][0]["tool_use_id"] == "toolu_1"
    tool = body["tools"][0]
    assert tool["name"] == "lookup"
    assert tool["description"] == "Look things up"
    assert tool["input_schema"]["properties"] == {"q": {"type": "string"}}
    assert tool["input_schema"]["required"] == ["q"]
    assert "system" not in body


def test_chat_tool_use_response():
    def handler(_request):
        return httpx.Response(
            200,
            json={
                "content": [
                    {"type": "tool_use", "id": "toolu_9", "name": "lookup", "input": {"q": "abc"}}
                ],
                "stop_reason": "tool_use",
                "usage": {"input_tokens": 0, "output_tokens": 0},
            },
        )

    out = make_provider(handler).chat(ChatRequest(model=MODEL))
    assert out.message.tool_calls == [ToolCall(id="toolu_9", name="lookup", arguments='{"q":"abc"}')]
    assert out.finish_reason == "tool_use"
    assert out.usage is None


def test_chat_http_error():
    def handler(_request):
        return httpx.Response(400, text="bad model")

    with pytest.raises(ProviderError, match="400"):
        make_provider(handler).chat(ChatRequest(model="ghost"))


def test_stream_text():
    def handler(_request):
        return sse_response(
            [
                ("message_start", {"type": "message_start", "message": {"id": "msg_1", "content": [],
                                                                       "usage": {"input_tokens": 10, "output_tokens": 0}}}),
                ("content_block_start", {"type": "content_block_start", "index": 0,
                                         "content_block": {"type": "text", "text": ""}}),
                ("content_block_delta", {"type": "content_block_delta", "index": 0,
                                         "delta": {"type": "text_delta", "text": "Hel"}}),
                ("content_block_delta", {"type": "content_block_delta", "index": 0,
                                         "delta": {"type": "text_delta", "text": "lo"}}),
                ("content_block_delta", {"type": "content_block_delta", "index": 0,
                                         "delta": {"type": "text_delta", "text": "!"}}),
                ("content_block_stop", {"type": "content_block_stop", "index": 0}),
                ("message_delta", {"type": "message_delta",
                                   "delta": {"stop_reason": "end_turn", "stop_sequence": None},
                                   "usage": {"input_tokens": 10, "output_tokens": 3}}),
                ("message_stop", {"type": "message_stop"}),
            ]
        )

    seen = []
    chunks = list(
        make_provider(handler, seen).stream(
            ChatRequest(model=MODEL, messages=[Message(Role.USER, "Hi")])
        )
    )
    assert json.loads(seen[0].content)["stream"] is True
    assert "".join(c.delta for c in chunks) == "Hello!"
    final = [c for c in chunks if c.finish_reason]
    assert len(final) == 1
    assert final[0].finish_reason == "end_turn"
    assert final[0].usage is not None
    assert final[0].usage.total_tokens == 13


def test_stream_tool_call():
    def handler(_request):
        return sse_response(
            [
                ("message_start", {"type": "message_start", "message": {"id": "msg_2", "content": [],
                                                                       "usage": {"input_tokens": 20, "output_tokens": 0}}}),
                ("content_block_start", {"type": "content_block_start", "index": 0,
                                         "content_block": {"type": "tool_use", "id": "toolu_1",
                                                           "name": "lookup", "input": {}}}),
                ("content_block_delta", {"type": "content_block_delta", "index": 0,
                                         "delta": {"type": "input_json_delta", "partial_json": '{"q":'}}),
                ("content_block_delta", {"type": "content_block_delta", "index": 0,
                                         "delta": {"type": "input_json_delta", "partial_json": '"abc"}'}}),
                ("content_block_stop", {"type": "content_block_stop", "index": 0}),
                ("message_delta", {"type": "message_delta",
                                   "delta": {"stop_reason": "tool_use", "stop_sequence": None},
                                   "usage": {"input_tokens": 20, "output_tokens": 15}}),
                ("message_stop", {"type": "message_stop"}),
            ]
        )

    chunks = list(
        make_provider(handler).stream(
            ChatRequest(model=MODEL, messages=[Message(Role.USER, "look up abc")])
        )
    )
    calls = [c.tool_call for c in chunks if c.tool_call is not None]
    assert len(calls) == 1
    assert calls[0].id == "toolu_1"
    assert calls[0].name == "lookup"
    assert calls[0].arguments == '{"q":"abc"}'
    final = [c for c in chunks if c.finish_reason]
    assert final[-1].finish_reason == "tool_use"
    assert chunks[-1].finish_reason == "tool_use"


def test_stream_http_error_ends_with_error_chunk():
    def handler(_request):
        return httpx.Response(500, text="boom")

    chunks = list(make_provider(handler).stream(ChatRequest(model=MODEL)))
    assert [c.finish_reason for c in chunks] == ["error"]


def test_stream_error_event_ends_with_error_chunk():
    def handler(_request):
        return sse_response(
            [
                ("content_block_delta", {"type": "content_block_delta", "index": 0,
                                         "delta": {"type": "text_delta", "text": "Hi"}}),
                ("error", {"type": "error", "error": {"type": "overloaded_error", "message": "busy"}}),
            ]
        )

    chunks = list(make_provider(handler).stream(ChatRequest(model=MODEL)))
    assert [c.delta for c in chunks] == ["Hi", ""]
    assert chunks[-1].finish_reason == "error"


def test_embed_not_supported():
    provider = AnthropicProvider(api_key="placeholder")
    with pytest.raises(ProviderError, match="not supported"):
        provider.embed(EmbedRequest(model="some-model", input=["hello"]))


def test_models_empty():
    assert AnthropicProvider(api_key="placeholder").models() == []


def test_name():
    assert AnthropicProvider().name() == "anthropic"
    assert AnthropicProvider(name="claude").name() == "claude"