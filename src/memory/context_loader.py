"""
Context loader - assembles the per-user memory snapshot for one exchange.

Round one (concurrent): skin profile, recent conversations, product
reactions, active routine products.
Round two (concurrent, needs the profile): ingredient effectiveness for the
user's skin type, the seasonal pattern for their climate, and global trend
signals. Trend signals load even without a profile.

Every source is isolated: a failing source is logged as a
``ContextSourceError`` and contributes its empty shape. ``load_user_context``
never raises.
"""

import asyncio
from loguru import logger
from typing import Any, Callable, List, Optional

from advisor.errors import ContextSourceError
from infrastructure.config import (
    EFFECTIVENESS_LIMIT,
    EFFECTIVENESS_MIN_SAMPLE,
    PRODUCT_REACTIONS_LIMIT,
    RECENT_CONVERSATIONS_LIMIT,
    TREND_LIMIT,
)
from infrastructure.observability import observe, update_current_observation
from memory.insights import effectiveness_insights, seasonal_insight, trend_insights
from memory.schemas import (
    ConversationMemory,
    LearningInsight,
    SkinProfile,
    UserContext,
    UserContextStoreProtocol,
)


class ContextLoader:
    """Loads a ``UserContext`` from a blocking ``UserContextStore``."""

    def __init__(self, store: UserContextStoreProtocol):
        self.store = store

    async def _source(self, name: str, fn: Callable, *args, default: Any) -> Any:
        """Run one blocking source off the event loop, degrading on failure."""
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as e:
            logger.warning("{}", ContextSourceError(name, e))
            return default

    @observe(name="load_user_context")
    async def load_user_context(self, user_id: str) -> UserContext:
        profile, conversations, reactions, routine = await asyncio.gather(
            self._source("skin_profile", self.store.get_skin_profile, user_id, default=None),
            self._source(
                "recent_conversations", self.store.get_recent_conversations,
                user_id, RECENT_CONVERSATIONS_LIMIT, default=[],
            ),
            self._source(
                "product_reactions", self.store.get_product_reactions,
                user_id, PRODUCT_REACTIONS_LIMIT, default=[],
            ),
            self._source("routine_products", self.store.get_routine_products, user_id, default=[]),
        )

        learning = await self._load_learning(profile)

        context = UserContext(
            skin_profile=profile,
            recent_conversations=[ConversationMemory.from_conversation(c) for c in conversations],
            product_reactions=list(reactions),
            known_allergies=list(profile.allergies) if profile else [],
            routine_products=list(routine),
            learning_insights=learning,
        )
        logger.debug(
            "Context for {}: profile={} conversations={} reactions={} routine={} insights={}",
            user_id,
            profile is not None,
            len(context.recent_conversations),
            len(context.product_reactions),
            len(context.routine_products),
            len(context.learning_insights),
        )
        update_current_observation(metadata={
            "has_profile": profile is not None,
            "learning_insights": len(learning),
        })
        return context

    async def _load_learning(self, profile: Optional[SkinProfile]) -> List[LearningInsight]:
        trends_job = self._source("trend_signals", self.store.get_trend_signals, TREND_LIMIT, default=[])

        if profile is None:
            trends = await trends_job
            return trend_insights(trends)

        if profile.climate:
            seasonal_job = self._source(
                "seasonal_pattern", self.store.get_seasonal_pattern, profile.climate, default=None,
            )
        else:
            seasonal_job = _none()

        effectiveness, seasonal, trends = await asyncio.gather(
            self._source(
                "ingredient_effectiveness", self.store.get_ingredient_effectiveness,
                profile.skin_type, EFFECTIVENESS_MIN_SAMPLE, EFFECTIVENESS_LIMIT, default=[],
            ),
            seasonal_job,
            trends_job,
        )

        insights = effectiveness_insights(profile.skin_type, effectiveness)
        season = seasonal_insight(seasonal)
        if season is not None:
            insights.append(season)
        insights.extend(trend_insights(trends))
        return insights


async def _none() -> None:
    return None
