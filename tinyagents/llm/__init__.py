"""Provider-neutral chat, streaming, embedding and tool-calling for LLM backends."""

__all__ = ["types", "registry", "middleware", "openai_compat", "ollama", "anthropic"]