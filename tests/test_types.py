import pytest

from tinyagents.llm.types import (
    ChatRequest,
    ChatResponse,
    Chunk,
    EmbedRequest,
    Message,
    Model,
    Provider,
    Role,
    ToolCall,
)


class _Echo(Provider):
    def name(self):
        return "echo"

    def chat(self, request):
        last = request.messages[-1]
        return ChatResponse(message=Message(Role.ASSISTANT, last.content))

    def stream(self, request):
        yield Chunk(delta=request.messages[-1].content)
        yield Chunk(finish_reason="stop")

    def embed(self, request):
        raise NotImplementedError

    def models(self):
        return [Model(id="echo-1")]


def test_role_values_match_wire_strings():
    assert Role.SYSTEM == "system"
    assert Role.USER.value == "user"
    assert Role("assistant") is Role.ASSISTANT
    assert Role("tool") is Role.TOOL


def test_provider_is_abstract():
    with pytest.raises(TypeError):
        Provider()


def test_concrete_provider_chat_and_stream():
    p = _Echo()
    req = ChatRequest(model="m", messages=[Message(Role.USER, "hi")])
    assert p.chat(req).message.content == "hi"
    chunks = list(p.stream(req))
    assert "".join(c.delta for c in chunks) == "hi"
    assert chunks[-1].finish_reason == "stop"
    assert [m.id for m in p.models()] == ["echo-1"]


def test_request_defaults_are_independent():
    a = ChatRequest()
    b = ChatRequest()
    a.messages.append(Message(Role.USER, "x"))
    a.metadata["user"] = "u"
    assert b.messages == []
    assert b.metadata == {}
    assert a.temperature is None and a.max_tokens is None


def test_default_response_and_message():
    resp = ChatResponse()
    assert resp.message.role is Role.ASSISTANT
    assert resp.usage is None
    msg = Message(Role.ASSISTANT, tool_calls=[ToolCall("id1", "lookup", '{"q":"abc"}')])
    assert msg.tool_calls[0].arguments == '{"q":"abc"}'
    assert EmbedRequest().input == []