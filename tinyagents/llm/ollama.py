"""Adapter for a local or remote Ollama server."""

from __future__ import annotations

import json
from collections.abc import Iterator
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

DEFAULT_BASE_URL = "http://localhost:11434"
_PROVIDER_NAME = "ollama"
_ERROR_BODY_LIMIT = 1024


def _role_value(role: Role | str) -> str:
    return role.value if isinstance(role, Role) else str(role)


def _to_role(raw: Any) -> Role | str:
    text = str(raw or "")
    try:
        return Role(text)
    except ValueError:
        return text


def _parse_json_text(text: str, what: str) -> Any:
    """Decode JSON text that is embedded verbatim in the request body."""
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ProviderError(f"ollama: invalid {what}: {exc}") from exc


def _arguments_text(raw: Any) -> str:
    """Re-encode decoded tool arguments as compact JSON text."""
    if raw is None:
        return ""
    return json.dumps(raw, separators=(",", ":"), ensure_ascii=False)


def _build_chat_request(request: ChatRequest, stream: bool) -> dict[str, Any]:
    messages = []
    for message in request.messages:
        wire: dict[str, Any] = {
            "role": _role_value(message.role),
            "content": message.content,
        }
        if message.tool_calls:
            calls = []
            for call in message.tool_calls:
                function: dict[str, Any] = {"name": call.name}
                if call.arguments:
                    function["arguments"] = _parse_json_text(
                        call.arguments, "tool call arguments"
                    )
                calls.append({"function": function})
            wire["tool_calls"] = calls
        messages.append(wire)

    body: dict[str, Any] = {
        "model": request.model,
        "messages": messages,
        "stream": stream,
    }

    if request.tools:
        tools = []
        for tool in request.tools:
            function: dict[str, Any] = {"name": tool.name}
            if tool.description:
                function["description"] = tool.description
            if tool.schema:
                function["parameters"] = _parse_json_text(tool.schema, "tool schema")
            tools.append({"type": "function", "function": function})
        body["tools"] = tools

    options: dict[str, Any] = {}
    if request.temperature is not None:
        options["temperature"] = request.temperature
    if request.max_tokens is not None:
        options["num_predict"] = request.max_tokens
    if request.stop:
        options["stop"] = list(request.stop)
    if options:
        body["options"] = options
    return body


def _to_tool_call(wire: dict[str, Any]) -> ToolCall:
    function = wire.get("function") or {}
    return ToolCall(
        name=str(function.get("name") or ""),
        arguments=_arguments_text(function.get("arguments")),
    )


def _to_message(wire: dict[str, Any]) -> Message:
    return Message(
        role=_to_role(wire.get("role")),
        content=str(wire.get("content") or ""),
        tool_calls=[_to_tool_call(call) for call in wire.get("tool_calls") or []],
    )


def _usage_from(prompt: int, completion: int) -> Usage | None:
    if prompt == 0 and completion == 0:
        return None
    return Usage(
        prompt_tokens=prompt,
        completion_tokens=completion,
        total_tokens=prompt + completion,
    )


def _frame_usage(frame: dict[str, Any]) -> Usage | None:
    return _usage_from(
        int(frame.get("prompt_eval_count") or 0), int(frame.get("eval_count") or 0)
    )


class OllamaProvider(Provider):
    """Provider talking to the Ollama HTTP API (chat, embed and tags endpoints)."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        http_client: httpx.Client | None = None,
        name: str = _PROVIDER_NAME,
    ) -> None:
        self._base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self._http = http_client if http_client is not None else httpx.Client(timeout=None)
        self._name = name

    def name(self) -> str:
        return self._name

    def _send(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        req = self._http.build_request(method, self._base_url + path, json=body)
        try:
            response = self._http.send(req, stream=stream)
        except httpx.HTTPError as exc:
            raise ProviderError(f"ollama: request failed: {exc}") from exc
        if response.status_code // 100 != 2:
            try:
                raw = response.read()[:_ERROR_BODY_LIMIT]
            finally:
                response.close()
            detail = raw.decode("utf-8", "replace").strip()
            raise ProviderError(f"ollama: http {response.status_code}: {detail}")
        return response

    @staticmethod
    def _decode(response: httpx.Response, what: str) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"ollama: decode {what} response: {exc}") from exc
        finally:
            response.close()
        if not isinstance(data, dict):
            raise ProviderError(f"ollama: decode {what} response: not a JSON object")
        return data

    def chat(self, request: ChatRequest) -> ChatResponse:
        """Perform a non-streaming completion."""
        body = _build_chat_request(request, False)
        data = self._decode(self._send("POST", "/api/chat", body), "chat")
        return ChatResponse(
            message=_to_message(data.get("message") or {}),
            finish_reason=str(data.get("done_reason") or ""),
            usage=_frame_usage(data),
        )

    def stream(self, request: ChatRequest) -> Iterator[Chunk]:
        """Perform a streaming completion, one chunk per NDJSON frame.

        Tool calls in a frame are yielded before that frame's text chunk.
        """
        body = _build_chat_request(request, True)
        response = self._send("POST", "/api/chat", body, stream=True)
        return self._frames(response)

    @staticmethod
    def _frames(response: httpx.Response) -> Iterator[Chunk]:
        try:
            for raw_line in response.iter_lines():
                line = raw_line.strip()
                if not line:
                    continue
                try:
                    frame = json.loads(line)
                except ValueError:
                    return
                if not isinstance(frame, dict):
                    return
                message = frame.get("message") or {}
                for call in message.get("tool_calls") or []:
                    yield Chunk(tool_call=_to_tool_call(call))
                chunk = Chunk(delta=str(message.get("content") or ""))
                if frame.get("done"):
                    chunk.finish_reason = str(frame.get("done_reason") or "")
                    chunk.usage = _frame_usage(frame)
                yield chunk
        except httpx.HTTPError:
            return
        finally:
            response.close()

    def embed(self, request: EmbedRequest) -> EmbedResponse:
        """Return one dense vector per input string."""
        body = {"model": request.model, "input": list(request.input)}
        data = self._decode(self._send("POST", "/api/embed", body), "embed")
        vectors = [
            [float(x) for x in vector or []] for vector in data.get("embeddings") or []
        ]
        prompt = int(data.get("prompt_eval_count") or 0)
        usage = Usage(prompt_tokens=prompt, total_tokens=prompt) if prompt > 0 else None
        return EmbedResponse(vectors=vectors, usage=usage)

    def models(self) -> list[Model]:
        """List locally installed models."""
        data = self._decode(self._send("GET", "/api/tags"), "models")
        return [Model(id=str(item.get("name") or "")) for item in data.get("models") or []]