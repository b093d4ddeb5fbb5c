"""Adapter for the Anthropic Messages API."""

from __future__ import annotations

import json
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

import httpx

from tinyagents.llm.types import (
    ChatRequest,
    ChatResponse,
    Chunk,
    EmbedRequest,
    EmbedResponse,
    Message,
    Model,
    Provider,
    ProviderError,
    Role,
    ToolCall,
    Usage,
)

DEFAULT_BASE_URL = "https://api.anthropic.com"
API_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1024

_PROVIDER_NAME = "anthropic"
_ERROR_BODY_LIMIT = 1024


def _role_value(role: Role | str) -> str:
    return role.value if isinstance(role, Role) else str(role)


def _compact(obj: Any) -> str:
    return json.dumps(obj, separators=(",", ":"), ensure_ascii=False)


def _text_block(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


def _assistant_blocks(message: Message) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    if message.content:
        blocks.append(_text_block(message.content))
    for call in message.tool_calls:
        arguments: Any = None
        if call.arguments:
            try:
                arguments = json.loads(call.arguments)
            except ValueError:
                arguments = None
        blocks.append(
            {"type": "tool_use", "id": call.id, "name": call.name, "input": arguments}
        )
    return blocks


def _input_schema(raw: str) -> dict[str, Any]:
    """Turn a JSON Schema text into the tool input schema object."""
    schema: dict[str, Any] = {"type": "object"}
    if not raw:
        return schema
    try:
        decoded = json.loads(raw)
    except ValueError:
        return schema
    if not isinstance(decoded, dict):
        return schema
    for key, value in decoded.items():
        if key == "properties":
            schema["properties"] = value
        elif key == "required":
            if isinstance(value, list):
                required = [item for item in value if isinstance(item, str)]
                if required:
                    schema["required"] = required
        elif key == "type":
            continue
        else:
            schema[key] = value
    return schema


def _build_params(request: ChatRequest, stream: bool) -> dict[str, Any]:
    """Convert a chat request into a Messages API body.

    System messages are joined into the top-level ``system`` field because
    the API accepts no system role inside ``messages``.
    """
    max_tokens = request.max_tokens if request.max_tokens is not None else DEFAULT_MAX_TOKENS

    system_parts: list[str] = []
    messages: list[dict[str, Any]] = []
    for message in request.messages:
        role = _role_value(message.role)
        if role == Role.SYSTEM.value:
            if message.content:
                system_parts.append(message.content)
        elif role == Role.USER.value:
            messages.append({"role": "user", "content": [_text_block(message.content)]})
        elif role == Role.ASSISTANT.value:
            messages.append({"role": "assistant", "content": _assistant_blocks(message)})
        elif role == Role.TOOL.value:
            messages.append(
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "tool_result",
                            "tool_use_id": message.tool_call_id,
                            "content": [_text_block(message.content)],
                            "is_error": False,
                        }
                    ],
                }
            )

    body: dict[str, Any] = {
        "model": request.model,
        "max_tokens": max_tokens,
        "messages": messages,
    }
    if request.stop:
        body["stop_sequences"] = list(request.stop)
    if system_parts:
        body["system"] = [_text_block("\n".join(system_parts))]
    if request.temperature is not None:
        body["temperature"] = request.temperature
    if request.tools:
        tools = []
        for tool in request.tools:
            wire: dict[str, Any] = {
                "name": tool.name,
                "input_schema": _input_schema(tool.schema),
            }
            if tool.description:
                wire["description"] = tool.description
            tools.append(wire)
        body["tools"] = tools
    if stream:
        body["stream"] = True
    return body


def _content_to_message(blocks: list[dict[str, Any]]) -> Message:
    message = Message(role=Role.ASSISTANT)
    for block in blocks:
        kind = block.get("type")
        if kind == "text":
            message.content += str(block.get("text") or "")
        elif kind == "tool_use":
            arguments = _compact(block["input"]) if "input" in block else ""
            message.tool_calls.append(
                ToolCall(
                    id=str(block.get("id") or ""),
                    name=str(block.get("name") or ""),
                    arguments=arguments,
                )
            )
    return message


def _to_usage(wire: dict[str, Any] | None) -> Usage | None:
    wire = wire or {}
    prompt = int(wire.get("input_tokens") or 0)
    completion = int(wire.get("output_tokens") or 0)
    if prompt == 0 and completion == 0:
        return None
    return Usage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=prompt + completion)


def _sse_events(lines: Iterable[str]) -> Iterator[dict[str, Any]]:
    """Decode server-sent events whose data is a JSON object."""
    data: list[str] = []

    def flush() -> dict[str, Any] | None:
        if not data:
            return None
        text = "\n".join(data)
        data.clear()
        decoded = json.loads(text)
        if not isinstance(decoded, dict):
            raise ValueError("event data is not a JSON object")
        return decoded

    for raw in lines:
        line = raw.rstrip("\r")
        if not line:
            event = flush()
            if event is not None:
                yield event
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data.append(line[len("data:"):].lstrip(" "))
    event = flush()
    if event is not None:
        yield event


@dataclass
class _ToolAccumulator:
    id: str = ""
    name: str = ""
    parts: list[str] = field(default_factory=list)

    def to_call(self) -> ToolCall:
        return ToolCall(id=self.id, name=self.name, arguments="".join(self.parts))


class AnthropicProvider(Provider):
    """Provider on top of the Anthropic Messages API.

    Without ``api_key`` the ``ANTHROPIC_API_KEY`` environment variable is
    used; ``base_url`` points the client at another endpoint and ``name``
    rebrands it in a registry.
    """

    def __init__(
        self,
        api_key: str = "",
        base_url: str = DEFAULT_BASE_URL,
        http_client: httpx.Client | None = None,
        name: str = _PROVIDER_NAME,
    ) -> None:
        self._api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._http = http_client if http_client is not None else httpx.Client(timeout=None)
        self._name = name

    def name(self) -> str:
        return self._name

    def _send(self, body: dict[str, Any], stream: bool) -> httpx.Response:
        headers = {
            "anthropic-version": API_VERSION,
            "Accept": "text/event-stream" if stream else "application/json",
        }
        if self._api_key:
            headers["x-api-key"] = self._api_key
        req = self._http.build_request(
            "POST", self._base_url + "/v1/messages", json=body, headers=headers
        )
        try:
            response = self._http.send(req, stream=stream)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self._name}: request failed: {exc}") from exc
        if not response.is_success:
            try:
                raw = response.read()[:_ERROR_BODY_LIMIT]
            finally:
                response.close()
            detail = raw.decode("utf-8", "replace").strip()
            raise ProviderError(f"{self._name}: http {response.status_code}: {detail}")
        return response

    def chat(self, request: ChatRequest) -> ChatResponse:
        """Perform a non-streaming completion."""
        response = self._send(_build_params(request, False), stream=False)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"{self._name}: decode response: {exc}") from exc
        finally:
            response.close()
        if not isinstance(data, dict):
            raise ProviderError(f"{self._name}: decode response: not a JSON object")
        return ChatResponse(
            message=_content_to_message(data.get("content") or []),
            finish_reason=str(data.get("stop_reason") or ""),
            usage=_to_usage(data.get("usage")),
        )

    def stream(self, request: ChatRequest) -> Iterator[Chunk]:
        """Perform a streaming completion.

        Text deltas are yielded as they arrive; tool-call argument fragments
        are gathered per content block and yielded, in block order, when the
        message stops, followed by the terminal chunk. A failed stream ends
        with a chunk whose finish reason is ``"error"``.
        """
        body = _build_params(request, True)
        try:
            response = self._send(body, stream=True)
        except ProviderError:
            return iter([Chunk(finish_reason="error")])
        return self._chunks(response)

    @staticmethod
    def _chunks(response: httpx.Response) -> Iterator[Chunk]:
        tools: dict[int, _ToolAccumulator] = {}
        finish_reason = ""
        usage: Usage | None = None
        try:
            for event in _sse_events(response.iter_lines()):
                kind = event.get("type")
                index = int(event.get("index") or 0)
                if kind == "content_block_start":
                    block = event.get("content_block") or {}
                    if block.get("type") == "tool_use":
                        tools[index] = _ToolAccumulator(
                            id=str(block.get("id") or ""), name=str(block.get("name") or "")
                        )
                elif kind == "content_block_delta":
                    delta = event.get("delta") or {}
                    if delta.get("type") == "text_delta":
                        text = str(delta.get("text") or "")
                        if text:
                            yield Chunk(delta=text)
                    elif delta.get("type") == "input_json_delta":
                        acc = tools.get(index)
                        if acc is not None:
                            acc.parts.append(str(delta.get("partial_json") or ""))
                elif kind == "message_delta":
                    delta = event.get("delta") or {}
                    finish_reason = str(delta.get("stop_reason") or "")
                    wire = event.get("usage") or {}
                    prompt = int(wire.get("input_tokens") or 0)
                    completion = int(wire.get("output_tokens") or 0)
                    usage = Usage(
                        prompt_tokens=prompt,
                        completion_tokens=completion,
                        total_tokens=prompt + completion,
                    )
                elif kind == "message_stop":
                    for key in sorted(tools):
                        yield Chunk(tool_call=tools[key].to_call())
                    yield Chunk(finish_reason=finish_reason, usage=usage)
                    return
                elif kind == "error":
                    yield Chunk(finish_reason="error")
                    return
        except (httpx.HTTPError, ValueError):
            yield Chunk(finish_reason="error")
        finally:
            response.close()

    def embed(self, request: EmbedRequest) -> EmbedResponse:
        """Always fails: the service offers no embeddings endpoint."""
        raise ProviderError(f"{self._name}: embeddings not supported")

    def models(self) -> list[Model]:
        """No model catalog is exposed; returns an empty list."""
        return []