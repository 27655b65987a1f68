"""
Conversation title generation - one small background-model call after the
first exchange of a conversation.
"""

import re
from loguru import logger
from typing import Any, Optional

from langchain_core.messages import HumanMessage

from advisor.prompts import build_title_prompt
from infrastructure.config import TITLE_MAX_TOKENS
from infrastructure.llm import get_background_llm, model_name, token_usage
from infrastructure.observability import observe, update_current_observation

TITLE_MAX_CHARS = 80
_QUOTES = "\"'“”‘’`"


def clean_title(raw: str) -> Optional[str]:
    """Strip surrounding quotes, collapse whitespace, cap length. Empty → None."""
    title = re.sub(r"\s+", " ", raw or "").strip().strip(_QUOTES).strip()
    if not title:
        return None
    if len(title) > TITLE_MAX_CHARS:
        title = title[:TITLE_MAX_CHARS].rstrip()
    return title


class TitleGenerator:
    """Generates 4-6 word titles with the background model."""

    def __init__(self, llm: Optional[Any] = None) -> None:
        self.llm = llm or get_background_llm(max_tokens=TITLE_MAX_TOKENS)

    @observe(name="generate_title", as_type="generation")
    async def generate_title(self, user_message: str, assistant_response: str) -> Optional[str]:
        """
        Return a short title, or None when the model returns nothing usable.

        The title is derived from the opening question only. Model errors
        propagate so the background runner can retry them.
        """
        prompt = build_title_prompt(user_message)
        update_current_observation(input=prompt, model=model_name(self.llm))

        response = await self.llm.ainvoke([HumanMessage(content=prompt)])
        content = response.content if hasattr(response, "content") else str(response)
        if not isinstance(content, str):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part)
                for part in content
            )

        title = clean_title(content)
        update_current_observation(output=title or "", usage=token_usage(response))
        if title is None:
            logger.warning("Title model returned an empty title")
        return title
