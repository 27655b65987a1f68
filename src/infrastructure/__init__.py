"""
Infrastructure layer - pure plumbing (DB, LLM, config, logging, tracing).

No business logic here. Just connections, clients, and configuration loading.
"""

from .llm import get_chat_llm, get_background_llm
from .observability import observe, flush, get_langfuse

__all__ = [
    "get_chat_llm",
    "get_background_llm",
    "observe",
    "flush",
    "get_langfuse",
]
