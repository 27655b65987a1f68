"""
Chat LLM providers - two-model architecture.

  - Primary:    user-facing advisor answers, streamed token by token
  - Background: titles and specialist insight extraction (short outputs)

Both are LangChain ``ChatOpenAI`` clients pointed at OpenRouter, so any
hosted model id (Anthropic, OpenAI, Google, ...) can be configured.
"""

from typing import Optional, Any, Dict
from langchain_openai import ChatOpenAI

from infrastructure.config import (
    PROVIDER,
    PRIMARY_MODEL,
    BACKGROUND_MODEL,
    CHAT_MAX_TOKENS,
    LLM_TEMPERATURE,
    OPENROUTER_BASE_URL,
    get_api_key,
)


def _build_llm(
    model: str,
    provider: str,
    temperature: float = 0,
    streaming: bool = False,
    max_tokens: Optional[int] = None,
    **kwargs: Any,
) -> ChatOpenAI:
    """Internal factory - builds a ChatOpenAI for any provider."""
    llm_kwargs: dict[str, Any] = dict(
        model=model,
        temperature=temperature,
        streaming=streaming,
        max_tokens=max_tokens,
        **kwargs,
    )

    if provider == "openrouter":
        llm_kwargs["openai_api_base"] = OPENROUTER_BASE_URL
        llm_kwargs["openai_api_key"] = get_api_key("openrouter")
    elif provider == "openai":
        llm_kwargs["openai_api_key"] = get_api_key("openai")

    return ChatOpenAI(**llm_kwargs)


def get_chat_llm(
    temperature: float = LLM_TEMPERATURE,
    max_tokens: int = CHAT_MAX_TOKENS,
    **kwargs: Any,
) -> ChatOpenAI:
    """LLM for the streamed advisor answer."""
    return _build_llm(
        PRIMARY_MODEL, PROVIDER,
        temperature=temperature, streaming=True, max_tokens=max_tokens, **kwargs,
    )


def get_background_llm(max_tokens: int, temperature: float = 0, **kwargs: Any) -> ChatOpenAI:
    """LLM for background jobs (title generation, insight extraction).

    Called once per job type so each gets its own ``max_tokens`` ceiling.
    """
    return _build_llm(
        BACKGROUND_MODEL, PROVIDER,
        temperature=temperature, max_tokens=max_tokens, **kwargs,
    )


# ---------------------------------------------------------------------------
# Response metadata helpers (LangFuse generation updates)
# ---------------------------------------------------------------------------


def model_name(llm: Any) -> str:
    """Extract model name from an LLM for LangFuse metadata."""
    if hasattr(llm, "model_name"):
        return llm.model_name
    if hasattr(llm, "model"):
        return llm.model
    return "unknown"


def token_usage(response: Any) -> Optional[Dict[str, int]]:
    """Pull input/output/total token counts from a LangChain response, if any."""
    usage_meta = getattr(response, "usage_metadata", None)
    if usage_meta:
        return {
            "input": usage_meta.get("input_tokens", 0),
            "output": usage_meta.get("output_tokens", 0),
            "total": usage_meta.get("total_tokens", 0),
        }
    meta = getattr(response, "response_metadata", None) or {}
    raw = meta.get("token_usage") or meta.get("usage") or {}
    if not raw:
        return None
    return {
        "input": raw.get("prompt_tokens", 0),
        "output": raw.get("completion_tokens", 0),
        "total": raw.get("total_tokens", 0),
    }
