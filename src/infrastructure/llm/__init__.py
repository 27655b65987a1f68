"""
LLM provider wrappers - two-model architecture.

  get_chat_llm()        → primary model (streamed advisor answers)
  get_background_llm()  → background model (titles, insight extraction)
"""

from .llm_provider import get_chat_llm, get_background_llm, model_name, token_usage

__all__ = [
    "get_chat_llm",
    "get_background_llm",
    "model_name",
    "token_usage",
]
