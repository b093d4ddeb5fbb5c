"""Adapter for the OpenAI Chat Completions wire format and its compatible services."""

from __future__ import annotations

import json
from collections.abc import Iterator
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

DEFAULT_BASE_URL = "https://api.openai.com/v1"
MISTRAL_BASE_URL = "https://api.mistral.ai/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

_PROVIDER_NAME = "openai"


def _role_value(role: Role | str) -> str:
    return role.value if isinstance(role, Role) else str(role)


def _to_role(raw: Any) -> Role | str:
    text = str(raw or "")
    try:
        return Role(text)
    except ValueError:
        return text


def _build_request(request: ChatRequest, stream: bool) -> dict[str, Any]:
    messages = []
    for message in request.messages:
        wire: dict[str, Any] = {
            "role": _role_value(message.role),
            "content": message.content,
        }
        if message.name:
            wire["name"] = message.name
        if message.tool_call_id:
            wire["tool_call_id"] = message.tool_call_id
        if message.tool_calls:
            wire["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in message.tool_calls
            ]
        messages.append(wire)

    body: dict[str, Any] = {
        "model": request.model,
        "messages": messages,
        "stream": stream,
    }
    if request.tools:
        body["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": json.loads(tool.schema) if tool.schema else None,
                },
            }
            for tool in request.tools
        ]
    if request.stop:
        body["stop"] = list(request.stop)
    if request.temperature is not None:
        body["temperature"] = request.temperature
    if request.max_tokens is not None:
        body["max_completion_tokens"] = request.max_tokens
    if "user" in request.metadata:
        body["user"] = request.metadata["user"]
    return body


def _to_message(wire: dict[str, Any]) -> Message:
    calls = [
        ToolCall(
            id=str(call.get("id") or ""),
            name=str((call.get("function") or {}).get("name") or ""),
            arguments=str((call.get("function") or {}).get("arguments") or ""),
        )
        for call in wire.get("tool_calls") or []
    ]
    return Message(
        role=_to_role(wire.get("role")),
        content=str(wire.get("content") or ""),
        name=str(wire.get("name") or ""),
        tool_calls=calls,
        tool_call_id=str(wire.get("tool_call_id") or ""),
    )


def _to_usage(wire: dict[str, Any] | None) -> Usage | None:
    if not wire:
        return None
    total = int(wire.get("total_tokens") or 0)
    if total == 0:
        return None
    return Usage(
        prompt_tokens=int(wire.get("prompt_tokens") or 0),
        completion_tokens=int(wire.get("completion_tokens") or 0),
        total_tokens=total,
    )


@dataclass
class _ToolAccumulator:
    id: str = ""
    name: str = ""
    parts: list[str] = field(default_factory=list)

    def to_call(self) -> ToolCall:
        return ToolCall(id=self.id, name=self.name, arguments="".join(self.parts))


class OpenAIProvider(Provider):
    """Provider speaking the OpenAI Chat Completions wire format.

    ``base_url`` points the client at any compatible service; ``name``
    rebrands it in a registry. An empty ``api_key`` sends no credentials.
    """

    def __init__(
        self,
        api_key: str = "",
        base_url: str = DEFAULT_BASE_URL,
        http_client: httpx.Client | None = None,
        name: str = _PROVIDER_NAME,
    ) -> None:
        self._api_key = api_key
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._http = http_client if http_client is not None else httpx.Client(timeout=None)
        self._name = name

    def name(self) -> str:
        return self._name

    def _send(
        self, method: str, path: str, body: dict[str, Any] | None = None, stream: bool = False
    ) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        req = self._http.build_request(
            method, self._base_url + path, json=body, headers=headers
        )
        try:
            response = self._http.send(req, stream=stream)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{self._name}: request failed: {exc}") from exc
        if not response.is_success:
            try:
                detail = response.read().decode("utf-8", "replace").strip()[:1024]
            finally:
                response.close()
            raise ProviderError(f"{self._name}: http {response.status_code}: {detail}")
        return response

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"{self._name}: decode response: {exc}") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"{self._name}: decode response: not a JSON object")
        return data

    def chat(self, request: ChatRequest) -> ChatResponse:
        """Perform a non-streaming completion."""
        data = self._json(self._send("POST", "/chat/completions", _build_request(request, False)))
        choices = data.get("choices") or []
        if not choices:
            raise ProviderError(f"{self._name}: chat returned no choices")
        choice = choices[0]
        return ChatResponse(
            message=_to_message(choice.get("message") or {}),
            finish_reason=str(choice.get("finish_reason") or ""),
            usage=_to_usage(data.get("usage")),
        )

    def stream(self, request: ChatRequest) -> Iterator[Chunk]:
        """Perform a streaming completion.

        Partial tool-call arguments are gathered so that each call is
        yielded once, just before the terminal chunk of its turn.
        """
        body = _build_request(request, True)
        body["stream_options"] = {"include_usage": True}
        response = self._send("POST", "/chat/completions", body, stream=True)
        return self._chunks(response)

    def _chunks(self, response: httpx.Response) -> Iterator[Chunk]:
        tools: dict[int, _ToolAccumulator] = {}
        try:
            for raw_line in response.iter_lines():
                line = raw_line.strip()
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    return
                try:
                    frame = json.loads(data)
                except ValueError:
                    return
                if not isinstance(frame, dict):
                    return
                for choice in frame.get("choices") or []:
                    delta = choice.get("delta") or {}
                    content = delta.get("content") or ""
                    if content:
                        yield Chunk(delta=content)
                    for call in delta.get("tool_calls") or []:
                        index = call.get("index")
                        acc = tools.setdefault(int(index) if index is not None else 0,
                                               _ToolAccumulator())
                        if call.get("id"):
                            acc.id = call["id"]
                        function = call.get("function") or {}
                        if function.get("name"):
                            acc.name = function["name"]
                        if function.get("arguments"):
                            acc.parts.append(function["arguments"])
                    finish = choice.get("finish_reason") or ""
                    if finish:
                        for index in sorted(tools):
                            yield Chunk(tool_call=tools[index].to_call())
                        tools = {}
                        yield Chunk(finish_reason=finish, usage=_to_usage(frame.get("usage")))
        except httpx.HTTPError:
            return
        finally:
            response.close()

    def embed(self, request: EmbedRequest) -> EmbedResponse:
        """Embed every input string; vectors follow the request order."""
        data = self._json(
            self._send("POST", "/embeddings", {"model": request.model, "input": list(request.input)})
        )
        items = data.get("data") or []
        vectors: list[list[float]] = [[] for _ in items]
        for item in items:
            index = int(item.get("index", -1))
            if 0 <= index < len(vectors):
                vectors[index] = [float(x) for x in item.get("embedding") or []]
        usage_wire = data.get("usage") or {}
        usage = _to_usage(
            {
                "prompt_tokens": usage_wire.get("prompt_tokens"),
                "total_tokens": usage_wire.get("total_tokens"),
            }
        )
        return EmbedResponse(vectors=vectors, usage=usage)

    def models(self) -> list[Model]:
        """List the catalog served at ``/models``."""
        data = self._json(self._send("GET", "/models"))
        return [Model(id=str(item.get("id") or "")) for item in data.get("data") or []]


def mistral_provider(api_key: str, **kwargs: Any) -> OpenAIProvider:
    """An OpenAI-format provider preconfigured for Mistral; kwargs override defaults."""
    options: dict[str, Any] = {"base_url": MISTRAL_BASE_URL, "name": "mistral"}
    options.update(kwargs)
    options.setdefault("api_key", api_key)
    return OpenAIProvider(**options)


def openrouter_provider(api_key: str, **kwargs: Any) -> OpenAIProvider:
    """An OpenAI-format provider preconfigured for OpenRouter; kwargs override defaults."""
    options: dict[str, Any] = {"base_url": OPENROUTER_BASE_URL, "name": "openrouter"}
    options.update(kwargs)
    options.setdefault("api_key", api_key)
    return OpenAIProvider(**options)