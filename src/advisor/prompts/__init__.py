"""
Advisor prompt templates - persona, user context, title, insight.

The persona is fetched from LangFuse Prompt Management at runtime.
Local fallbacks are defined in 'advisor_prompts.py'.
"""

from .advisor_prompts import (
    LANGFUSE_PROMPT_NAMES,
    build_insight_prompt,
    build_system_prompt,
    build_title_prompt,
    format_context_for_prompt,
    get_persona,
)

__all__ = [
    "LANGFUSE_PROMPT_NAMES",
    "build_insight_prompt",
    "build_system_prompt",
    "build_title_prompt",
    "format_context_for_prompt",
    "get_persona",
]
