"""Composable provider wrappers: retry, rate limiting, logging and fallback."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from typing import TypeVar

from tinyagents.llm.types import (
    ChatRequest,
    ChatResponse,
    Chunk,
    EmbedRequest,
    EmbedResponse,
    Model,
    Provider,
    Usage,
)

Middleware = Callable[[Provider], Provider]
BackoffFunc = Callable[[int], float]
"""Delay in seconds before the given (1-indexed) attempt."""

_R = TypeVar("_R")


class _Wrapper(Provider):
    """Provider that delegates every call to the wrapped one."""

    def __init__(self, inner: Provider) -> None:
        self._next = inner

    def name(self) -> str:
        return self._next.name()

    def chat(self, request: ChatRequest) -> ChatResponse:
        return self._next.chat(request)

    def stream(self, request: ChatRequest) -> Iterator[Chunk]:
        return self._next.stream(request)

    def embed(self, request: EmbedRequest) -> EmbedResponse:
        return self._next.embed(request)

    def models(self) -> list[Model]:
        return self._next.models()


def with_middlewares(base: Provider, *args: Middleware) -> Provider:
    """Wrap ``base`` so that the first middleware given is outermost."""
    out = base
    for middleware in reversed(args):
        out = middleware(out)
    return out


def exponential_backoff(base: float, maximum: float) -> BackoffFunc:
    """Capped exponential backoff in seconds: ``base`` doubling up to ``maximum``."""
    if base <= 0:
        base = 0.01
    if maximum < base:
        maximum = base

    def delay(attempt: int) -> float:
        if attempt <= 1:
            return base
        d = base
        for _ in range(1, attempt):
            if d >= maximum:
                break
            d *= 2
        return min(d, maximum)

    return delay


class _Retry(_Wrapper):
    def __init__(
        self,
        inner: Provider,
        max_attempts: int,
        backoff: BackoffFunc | None,
        should_retry: Callable[[Exception], bool],
    ) -> None:
        super().__init__(inner)
        self._max = max_attempts
        self._backoff = backoff
        self._should_retry = should_retry

    def _attempt(self, call: Callable[[], _R]) -> _R:
        attempt = 1
        while True:
            try:
                return call()
            except Exception as exc:
                if attempt >= self._max or not self._should_retry(exc):
                    raise
            self._wait(attempt)
            attempt += 1

    def _wait(self, attempt: int) -> None:
        if self._backoff is None:
            return
        delay = self._backoff(attempt)
        if delay > 0:
            time.sleep(delay)

    def chat(self, request: ChatRequest) -> ChatResponse:
        return self._attempt(lambda: self._next.chat(request))

    def embed(self, request: EmbedRequest) -> EmbedResponse:
        return self._attempt(lambda: self._next.embed(request))


def retry(
    max_attempts: int,
    backoff: BackoffFunc | None = None,
    should_retry: Callable[[Exception], bool] | None = None,
) -> Middleware:
    """Retry failed ``chat`` and ``embed`` calls up to ``max_attempts`` times.

    ``stream`` and ``models`` pass through untouched. Without
    ``should_retry`` every error is retried.
    """
    max_attempts = max(max_attempts, 1)
    predicate = should_retry if should_retry is not None else (lambda exc: True)
    return lambda inner: _Retry(inner, max_attempts, backoff, predicate)


class _RateLimit(_Wrapper):
    def __init__(self, inner: Provider, interval: float, burst: int) -> None:
        super().__init__(inner)
        self._interval = interval
        self._burst = burst
        self._lock = threading.Lock()
        self._tokens = burst
        self._last = time.monotonic()

    def _acquire(self) -> None:
        while True:
            with self._lock:
                now = time.monotonic()
                earned = int((now - self._last) // self._interval)
                if earned > 0:
                    self._tokens = min(self._tokens + earned, self._burst)
                    self._last += earned * self._interval
                if self._tokens > 0:
                    self._tokens -= 1
                    return
                wait = self._last + self._interval - now
            if wait > 0:
                time.sleep(wait)

    def chat(self, request: ChatRequest) -> ChatResponse:
        self._acquire()
        return self._next.chat(request)

    def stream(self, request: ChatRequest) -> Iterator[Chunk]:
        self._acquire()
        return self._next.stream(request)

    def embed(self, request: EmbedRequest) -> EmbedResponse:
        self._acquire()
        return self._next.embed(request)

    def models(self) -> list[Model]:
        self._acquire()
        return self._next.models()


def rate_limit(interval: float = 1.0, burst: int = 1) -> Middleware:
    """Token bucket: one request per ``interval`` seconds, bursts up to ``burst``.

    All four operations share the same bucket.
    """
    if interval <= 0:
        interval = 1.0
    burst = max(burst, 1)
    return lambda inner: _RateLimit(inner, interval, burst)


class _Log(_Wrapper):
    def __init__(self, inner: Provider, logger: logging.Logger) -> None:
        super().__init__(inner)
        self._log = logger
        self._llm = inner.name()

    def _timed(self, op: str, model: str, call: Callable[[], _R], usage_of=None) -> _R:
        start = time.monotonic()
        try:
            result = call()
        except Exception as exc:
            self._emit(op, model, time.monotonic() - start, exc, None)
            raise
        usage = usage_of(result) if usage_of is not None else None
        self._emit(op, model, time.monotonic() - start, None, usage)
        return result

    def chat(self, request: ChatRequest) -> ChatResponse:
        return self._timed(
            "chat", request.model, lambda: self._next.chat(request), lambda r: r.usage
        )

    def stream(self, request: ChatRequest) -> Iterator[Chunk]:
        # Only the opening of the stream is logged.
        return self._timed("stream-open", request.model, lambda: self._next.stream(request))

    def embed(self, request: EmbedRequest) -> EmbedResponse:
        return self._timed(
            "embed", request.model, lambda: self._next.embed(request), lambda r: r.usage
        )

    def models(self) -> list[Model]:
        return self._timed("models", "", self._next.models)

    def _emit(
        self,
        op: str,
        model: str,
        seconds: float,
        error: Exception | None,
        usage: Usage | None,
    ) -> None:
        fields: dict[str, object] = {
            "llm": self._llm,
            "op": op,
            "duration_ms": int(seconds * 1000),
        }
        if model:
            fields["model"] = model
        if usage is not None:
            fields["tokens_in"] = usage.prompt_tokens
            fields["tokens_out"] = usage.completion_tokens
        if error is not None:
            fields["err"] = str(error)
        text = " ".join(f"{key}={value}" for key, value in fields.items())
        if error is not None:
            self._log.warning("llm call failed %s", text)
        else:
            self._log.info("llm call %s", text)


def logging_middleware(logger: logging.Logger | None = None) -> Middleware:
    """Log one line per call with its duration and outcome."""
    log = logger if logger is not None else logging.getLogger("tinyagents.llm")
    return lambda inner: _Log(inner, log)


class _Fallback(Provider):
    def __init__(self, primary: Provider, backup: Provider) -> None:
        self._primary = primary
        self._backup = backup

    def name(self) -> str:
        return f"{self._primary.name()}|{self._backup.name()}"

    def chat(self, request: ChatRequest) -> ChatResponse:
        try:
            return self._primary.chat(request)
        except Exception:
            return self._backup.chat(request)

    def stream(self, request: ChatRequest) -> Iterator[Chunk]:
        try:
            return self._primary.stream(request)
        except Exception:
            return self._backup.stream(request)

    def embed(self, request: EmbedRequest) -> EmbedResponse:
        try:
            return self._primary.embed(request)
        except Exception:
            return self._backup.embed(request)

    def models(self) -> list[Model]:
        try:
            return self._primary.models()
        except Exception:
            return self._backup.models()


def fallback(primary: Provider, backup: Provider) -> Provider:
    """Delegate to ``primary`` and, on any error, retry once against ``backup``."""
    return _Fallback(primary, backup)