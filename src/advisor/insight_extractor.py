"""
Specialist insight extraction - mines one exchange for structured facts.

Two strategies, in order:
    1. Structured output (``with_structured_output`` bound to the
       specialist's pydantic schema).
    2. Free-text reply, scanned for the first complete ``{...}`` object,
       then validated against the same schema.

Only a payload that validates becomes a ``SpecialistInsight``; fields the
model left out default to empty. Missing or invalid JSON is a no-op.
"""

import asyncio
import json
from loguru import logger
from typing import Any, Dict, List, Optional

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from advisor.errors import ExtractionParseError
from advisor.prompts import build_insight_prompt
from advisor.specialists import get_specialist
from infrastructure.config import (
    BACKGROUND_BACKOFF_MAX,
    BACKGROUND_BACKOFF_MIN,
    BACKGROUND_RETRY_ATTEMPTS,
    INSIGHT_MAX_TOKENS,
    INSIGHT_STRUCTURED_OUTPUT,
)
from infrastructure.llm import get_background_llm, model_name, token_usage
from infrastructure.observability import observe, update_current_observation
from memory.schemas import ConversationStoreProtocol, SpecialistInsight


_decoder = json.JSONDecoder()


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Return the first complete JSON object embedded in ``text``.

    Raises:
        ExtractionParseError: if no ``{...}`` span decodes to an object.
    """
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = _decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    raise ExtractionParseError("no JSON object in extraction reply")


def _content_text(response: Any) -> str:
    content = response.content if hasattr(response, "content") else str(response)
    if isinstance(content, list):
        return "".join(p.get("text", "") if isinstance(p, dict) else str(p) for p in content)
    return content


class InsightExtractor:
    """Extracts ``SpecialistInsight`` records with the background model."""

    def __init__(
        self,
        llm: Optional[Any] = None,
        structured: bool = INSIGHT_STRUCTURED_OUTPUT,
        retry_attempts: int = BACKGROUND_RETRY_ATTEMPTS,
        backoff_min: float = BACKGROUND_BACKOFF_MIN,
        backoff_max: float = BACKGROUND_BACKOFF_MAX,
    ) -> None:
        self.llm = llm or get_background_llm(max_tokens=INSIGHT_MAX_TOKENS)
        self.structured = structured
        self.retry_attempts = max(1, retry_attempts)
        self.backoff_min = backoff_min
        self.backoff_max = backoff_max

    async def _structured(self, schema: type, messages: List) -> Optional[Dict[str, Any]]:
        try:
            bound = self.llm.with_structured_output(schema, method="function_calling")
            result = await bound.ainvoke(messages)
        except Exception as e:
            logger.debug("Structured extraction unavailable, falling back to text: {}", e)
            return None
        if isinstance(result, BaseModel):
            return result.model_dump()
        if isinstance(result, dict):
            try:
                return schema.model_validate(result).model_dump()
            except ValidationError:
                return None
        return None

    async def _from_text(self, schema: type, messages: List) -> Optional[Dict[str, Any]]:
        response = await self.llm.ainvoke(messages)
        raw = _content_text(response)
        update_current_observation(output=raw[:500], usage=token_usage(response))
        try:
            return schema.model_validate(parse_json_object(raw)).model_dump()
        except ExtractionParseError as e:
            logger.info("Insight extraction skipped: {}", e)
        except ValidationError as e:
            logger.info("Insight extraction skipped: payload failed validation ({} errors)", e.error_count())
        return None

    @observe(name="extract_insight", as_type="generation")
    async def extract(
        self,
        conversation_id: str,
        specialist_type: str,
        user_message: str,
        assistant_response: str,
    ) -> Optional[SpecialistInsight]:
        """
        Extract an insight; None when nothing valid was produced.

        Transport errors from the model propagate so ``extract_insight``
        can retry them.
        """
        specialist = get_specialist(specialist_type)
        if specialist is None:
            logger.warning("No extraction schema for specialist '{}'", specialist_type)
            return None

        prompt = build_insight_prompt(specialist_type, user_message, assistant_response)
        messages = [HumanMessage(content=prompt)]
        update_current_observation(
            input=prompt,
            model=model_name(self.llm),
            metadata={"specialist": specialist_type},
        )

        data = None
        if self.structured:
            data = await self._structured(specialist.insight_schema, messages)
        if data is None:
            data = await self._from_text(specialist.insight_schema, messages)
        if data is None:
            return None

        return SpecialistInsight(
            conversation_id=conversation_id,
            specialist_type=specialist_type,
            data=data,
        )

    async def extract_insight(
        self,
        conversation_id: str,
        specialist_type: str,
        user_message: str,
        assistant_response: str,
        store: Optional[ConversationStoreProtocol] = None,
    ) -> Optional[SpecialistInsight]:
        """
        Background job body: extract, persist a validated insight, return it.

        Model errors are retried with backoff; once attempts run out the
        failure is logged and None returned. Never raises.
        """
        log = logger.bind(conversation_id=conversation_id, specialist=specialist_type)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(multiplier=1, min=self.backoff_min, max=self.backoff_max),
                reraise=True,
            ):
                with attempt:
                    insight = await self.extract(conversation_id, specialist_type, user_message, assistant_response)
            if insight is not None and store is not None:
                await asyncio.to_thread(store.save_specialist_insight, insight)
                log.info("Stored {} insight", specialist_type)
            return insight
        except Exception as e:
            log.warning("Insight extraction failed: {}", e)
            return None
