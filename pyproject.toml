[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tinyagents"
version = "0.1.0"
description = "Building blocks for small agent systems: CRDTs with a snapshot replicator, provider-neutral LLM adapters with middleware, and conversation memory."
requires-python = ">=3.10"
dependencies = [
    "httpx",
]
keywords = [
    "agents",
    "llm",
    "crdt",
    "replication",
    "openai",
    "anthropic",
    "ollama",
    "middleware",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["tinyagents"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
