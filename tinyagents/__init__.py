"""Building blocks for small agent systems: CRDTs, LLM providers and conversation memory."""

__version__ = "0.1.0"