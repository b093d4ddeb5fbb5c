# tinyagents

Small building blocks for agent systems:

- **CRDTs** — a grow-only counter, a positive/negative counter, an
  observed-remove set and a last-write-wins register, all mergeable and
  serialisable to JSON, plus a `Replicator` that spreads snapshots over any
  broadcast function you supply.
- **LLM providers** — one provider-neutral shape for chat, streaming,
  embeddings and model listing, with adapters for OpenAI-compatible APIs
  (including Mistral and OpenRouter), Ollama and Anthropic.
- **Middleware** — retry with exponential backoff, token-bucket rate
  limiting, logging and provider fallback, composable in any order.
- **Memory** — a fixed-capacity conversation buffer.

The only runtime dependency is `httpx`.

## CRDTs

Every replicated type (`tinyagents.crdt.core.CRDT`) offers `merge`,
`snapshot` and `restore`. Merging is idempotent, commutative and
associative, so replicas converge whatever the order in which they exchange
state. Merging with `None` or with a replica of another type raises
`MergeError`.

```python
from tinyagents.crdt.gcounter import GCounter
from tinyagents.crdt.orset import ORSet

a = GCounter("node-a")
b = GCounter("node-b")
a.inc(5)
b.inc(3)
a.merge(b)
assert a.value() == 8

s1 = ORSet("node-a")
s2 = ORSet("node-b")
s1.add("item")
s2.merge(s1)
s1.remove("item")
s2.add("item")          # a concurrent add wins over the remove
s1.merge(s2)
assert s1.contains("item")
```

`PNCounter` (in `tinyagents.crdt.pncounter`) adds `dec`, and its value may
be negative. `ORSet.values()` returns the live elements sorted by their JSON
form; elements must be hashable and JSON-serialisable.

A `LWWRegister` resolves concurrent writes with a `HybridClock`, whose
timestamps stay strictly increasing even when the wall clock steps back.
`HybridTimestamp` values order by wall time, then logical counter, then node.

```python
from tinyagents.crdt.core import HybridClock
from tinyagents.crdt.lww import LWWRegister

register = LWWRegister("node-a", HybridClock(), "initial")
register.set("latest")
assert register.get() == "latest"
```

### Replication

A `Replicator` sends snapshots through a broadcast callable and merges
payloads handed to `deliver`. Payloads that come back to their sender are
ignored, and payloads for unregistered keys are logged and dropped. The
`"gcounter"` and `"pncounter"` types are known out of the box; register
constructors for other types with `register_type`. Failures raise
`ReplicatorError`.

```python
from tinyagents.crdt.core import HybridClock
from tinyagents.crdt.gcounter import GCounter
from tinyagents.crdt.lww import LWWRegister
from tinyagents.crdt.replicator import Replicator, register_type

register_type("lww[string]", lambda node: LWWRegister(node, HybridClock(), ""))

def broadcast(payload: bytes) -> None:
    ...  # hand the payload to every peer, which calls peer.deliver(payload)

counter = GCounter("node-a")
# Entering the context starts the periodic re-broadcast; leaving it closes
# the replicator and drops its registrations.
with Replicator("node-a", broadcast, sync_interval=5.0) as replicator:
    replicator.register("hits", counter, "gcounter")
    counter.inc(1)
    replicator.replicate("hits")
```

## LLM providers

Requests and responses are the dataclasses in `tinyagents.llm.types`
(`ChatRequest`, `ChatResponse`, `Chunk`, `Message`, `ToolCall`, `ToolSpec`,
`EmbedRequest`, `EmbedResponse`, `Model`, `Usage`). Every provider
implements `Provider`: `name`, `chat`, `stream` (an iterator of chunks),
`embed` and `models`. Failed calls raise `ProviderError`.

```python
from tinyagents.llm.openai_compat import OpenAIProvider, mistral_provider
from tinyagents.llm.types import ChatRequest, Message, Role

provider = OpenAIProvider(api_key="placeholder")
request = ChatRequest(model="gpt-4o-mini", messages=[Message(role=Role.USER, content="hi")])

response = provider.chat(request)
print(response.message.content)

for chunk in provider.stream(request):
    print(chunk.delta, end="")
```

- `OllamaProvider` (in `tinyagents.llm.ollama`) talks to an Ollama server,
  by default at `http://localhost:11434`.
- `AnthropicProvider` (in `tinyagents.llm.anthropic`) talks to the Messages
  API; without `api_key` it reads `ANTHROPIC_API_KEY` from the environment.
  It has no embeddings (`embed` raises `ProviderError`) and `models` returns
  an empty list.
- `mistral_provider` and `openrouter_provider` preconfigure the
  OpenAI-compatible adapter for those services; extra keyword arguments
  override their defaults.

Every adapter accepts `base_url`, `http_client` (an `httpx.Client`) and
`name`.

### Registry

```python
from tinyagents.llm.registry import Registry

registry = Registry()
registry.register(provider)
chosen, model = registry.resolve("openai/gpt-4o")   # model == "gpt-4o"
```

`resolve` raises `ValueError` for an empty name and
`ProviderNotFoundError` for an unknown provider.

### Middleware

The first middleware given wraps outermost:

```python
from tinyagents.llm.middleware import (
    exponential_backoff, fallback, logging_middleware, rate_limit, retry,
    with_middlewares,
)

robust = with_middlewares(
    provider,
    logging_middleware(None),
    retry(3, exponential_backoff(0.05, 1.0), None),
    rate_limit(1.0, 5),
)
either = fallback(robust, mistral_provider("placeholder"))
```

`retry` applies to `chat` and `embed` only; `rate_limit` shares one token
bucket across all four operations; `fallback` tries the backup once when the
primary raises.

## Memory

```python
from tinyagents.memory.buffer import Buffer
from tinyagents.llm.types import Message, Role

memory = Buffer(10)
memory.append(Message(role=Role.USER, content="hello"))
recent = memory.window(5)   # oldest first; window(0) returns everything
```

When full, the buffer evicts its oldest message. `search` raises
`NotSupportedError`.

## What this package does not do

It has no actor runtime and no message queue in front of agents, no
persistent or vector memory, and no network transport of its own: the
`Replicator` relies on the broadcast function you give it. There is no
command-line tool.

## Running the tests

Install the `test` extra and run `pytest` from the project directory.