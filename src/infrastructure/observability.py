"""
Observability layer - LangFuse v3 integration for tracing, cost, and latency.

Provides:
- ``get_langfuse()``          - singleton Langfuse client
- ``fetch_prompt()``          - pull prompts from LangFuse Prompt Management
- ``observe``                 - wrapped decorator for auto-tracing
- ``update_current_trace``    - tag traces with user_id / conversation id
- ``update_current_observation`` - attach I/O + usage to the current span
- ``flush()``                 - ensure events are sent before process exit

Configuration:
    .env must contain:
        LANGFUSE_SECRET_KEY
        LANGFUSE_PUBLIC_KEY
        LANGFUSE_BASE_URL   (default: https://us.cloud.langfuse.com)

    config/param.yaml:
        observability:
          enabled: true

When ``enabled`` is false every decorator becomes a passthrough and every
helper returns immediately.
"""

from loguru import logger
import os
from typing import Optional

from langfuse import Langfuse
from langfuse import get_client as _get_lf_client
from langfuse import observe as _lf_observe

# ---------------------------------------------------------------------------
# Config flag
# ---------------------------------------------------------------------------

_ENABLED: Optional[bool] = None


def _is_enabled() -> bool:
    """Check if observability is enabled (param.yaml) and keys are present."""
    global _ENABLED
    if _ENABLED is not None:
        return _ENABLED
    from infrastructure.config import _get_nested, _PARAMS

    configured = _get_nested(_PARAMS, "observability", "enabled", default=True)
    has_keys = bool(os.getenv("LANGFUSE_SECRET_KEY") and os.getenv("LANGFUSE_PUBLIC_KEY"))
    _ENABLED = bool(configured and has_keys)
    return _ENABLED


# ---------------------------------------------------------------------------
# Singleton LangFuse client
# ---------------------------------------------------------------------------

_langfuse_client: Optional[Langfuse] = None
_initialised = False


def get_langfuse() -> Optional[Langfuse]:
    """
    Return a singleton Langfuse client.

    Returns None if observability is disabled or keys are missing.
    """
    global _langfuse_client, _initialised
    if _initialised:
        return _langfuse_client

    _initialised = True

    if not _is_enabled():
        logger.info("Observability disabled (config or missing keys) - LangFuse not initialised.")
        return None

    base_url = os.getenv("LANGFUSE_BASE_URL", "https://us.cloud.langfuse.com")
    try:
        _langfuse_client = Langfuse(
            secret_key=os.getenv("LANGFUSE_SECRET_KEY"),
            public_key=os.getenv("LANGFUSE_PUBLIC_KEY"),
            host=base_url,
        )
        logger.info("LangFuse client initialised (host={})", base_url)
    except Exception as exc:
        logger.error("Failed to initialise LangFuse: {}", exc)
        _langfuse_client = None
    return _langfuse_client


# ---------------------------------------------------------------------------
# Prompt Management - fetch from LangFuse with local fallback
# ---------------------------------------------------------------------------


def fetch_prompt(
    name: str,
    *,
    fallback: str,
    cache_ttl_seconds: int = 300,
) -> str:
    """
    Fetch a static prompt text from **LangFuse Prompt Management**.

    Lets the advisor persona and specialist prompts be edited live in the
    LangFuse dashboard. When the prompt is missing or LangFuse is
    unavailable the local ``fallback`` string is returned unchanged.

    Args:
        name:  Prompt name as registered in LangFuse (e.g. ``"advisor-persona"``).
        fallback:  Local prompt text.
        cache_ttl_seconds:  Client-side cache TTL (default 5 min).
    """
    client = get_langfuse()
    if client is None:
        return fallback

    try:
        prompt_obj = client.get_prompt(
            name,
            type="text",
            cache_ttl_seconds=cache_ttl_seconds,
        )
        compiled = prompt_obj.compile()
        logger.debug("LangFuse prompt '{}' loaded (version={})", name, getattr(prompt_obj, "version", "?"))
        return compiled
    except Exception as exc:
        logger.debug(
            "LangFuse prompt '{}' not found or fetch failed: {}. Using local fallback.",
            name,
            exc,
        )
        return fallback


# ---------------------------------------------------------------------------
# @observe decorator
# ---------------------------------------------------------------------------


def observe(
    *,
    name: Optional[str] = None,
    as_type: Optional[str] = None,
):
    """
    Decorator that wraps ``langfuse.observe`` (works on sync and async functions).

    Becomes a passthrough when observability is disabled.

    Args:
        name: Span name (defaults to the function name).
        as_type: One of ``"generation"`` | ``None`` (span).
    """
    def _passthrough(fn):
        return fn

    if not _is_enabled():
        return _passthrough

    kwargs = {}
    if name is not None:
        kwargs["name"] = name
    if as_type is not None:
        kwargs["as_type"] = as_type

    return _lf_observe(**kwargs)


# ---------------------------------------------------------------------------
# Trace & Span Update Helpers (v3 API - uses get_client())
# ---------------------------------------------------------------------------


def update_current_trace(
    *,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    tags: Optional[list] = None,
) -> None:
    """
    Update the current LangFuse trace with user/conversation info.

    ``session_id`` carries the conversation id so a whole conversation
    groups into one LangFuse session.
    """
    if not _is_enabled():
        return
    try:
        kwargs = {}
        if user_id is not None:
            kwargs["user_id"] = user_id
        if session_id is not None:
            kwargs["session_id"] = session_id
        if metadata is not None:
            kwargs["metadata"] = metadata
        if tags is not None:
            kwargs["tags"] = tags
        _get_lf_client().update_current_trace(**kwargs)
    except Exception as exc:
        logger.debug("update_current_trace failed (non-critical): {}", exc)


def update_current_observation(
    *,
    input: Optional[str] = None,
    output: Optional[str] = None,
    metadata: Optional[dict] = None,
    usage: Optional[dict] = None,
    model: Optional[str] = None,
) -> None:
    """
    Update the current span/generation with I/O and usage data.

    Generation updates (``model`` or ``usage`` given) go through
    ``update_current_generation()``; everything else is a span update.
    """
    if not _is_enabled():
        return
    try:
        client = _get_lf_client()

        if usage is not None or model is not None:
            gen_kwargs = {}
            if input is not None:
                gen_kwargs["input"] = input
            if output is not None:
                gen_kwargs["output"] = output
            if metadata is not None:
                gen_kwargs["metadata"] = metadata
            if model is not None:
                gen_kwargs["model"] = model
            if usage is not None:
                gen_kwargs["usage_details"] = usage
            client.update_current_generation(**gen_kwargs)
            return

        span_kwargs = {}
        if input is not None:
            span_kwargs["input"] = input
        if output is not None:
            span_kwargs["output"] = output
        if metadata is not None:
            span_kwargs["metadata"] = metadata
        if span_kwargs:
            client.update_current_span(**span_kwargs)
    except Exception as exc:
        logger.debug("update_current_observation failed (non-critical): {}", exc)


def flush() -> None:
    """Flush pending LangFuse events (call before program exit)."""
    if not _is_enabled():
        return
    try:
        _get_lf_client().flush()
        logger.debug("LangFuse flushed.")
    except Exception as exc:
        logger.debug("LangFuse flush failed: {}", exc)
