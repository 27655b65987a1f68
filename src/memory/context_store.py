"""
User context store - read-only queries over tables owned by other flows.

Sources: skin profile, recent conversations, product reactions, the active
routine, and the learning engine aggregates (ingredient effectiveness,
seasonal patterns, trend signals).
"""

from typing import Any, Callable, Dict, List, Optional
from sqlalchemy import text
from memory.schemas import Conversation, ProductReaction, RoutineProduct, SkinProfile


class UserContextStore:
    """
    Read-side queries for the context loader.

    Methods raise on database errors; isolation and degradation to empty
    shapes is the loader's job.
    """

    def __init__(self, session_factory: Optional[Callable] = None):
        if not session_factory:
            from infrastructure.db.sql_client import get_session
            session_factory = get_session
        self.session_factory = session_factory

    def _fetch(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        session = self.session_factory()
        try:
            rows = session.execute(text(sql), params).mappings().all()
            return [dict(r) for r in rows]
        finally:
            session.close()

    def get_skin_profile(self, user_id: str) -> Optional[SkinProfile]:
        rows = self._fetch(
            """
            SELECT skin_type, skin_concerns, allergies, fitzpatrick_scale, climate,
                   age_range, budget_range, experience_level, onboarding_completed
            FROM user_profiles
            WHERE user_id = :user_id
            LIMIT 1
            """,
            {"user_id": user_id},
        )
        return SkinProfile.from_dict(rows[0]) if rows else None

    def get_recent_conversations(self, user_id: str, limit: int) -> List[Conversation]:
        rows = self._fetch(
            """
            SELECT id::text AS id, user_id, title, specialist_type, created_at, updated_at
            FROM advisor_conversations
            WHERE user_id = :user_id
            ORDER BY updated_at DESC
            LIMIT :limit
            """,
            {"user_id": user_id, "limit": limit},
        )
        return [Conversation.from_dict(r) for r in rows]

    def get_product_reactions(self, user_id: str, limit: int) -> List[ProductReaction]:
        rows = self._fetch(
            """
            SELECT COALESCE(p.name_en, 'Unknown') AS product_name, r.reaction
            FROM user_product_reactions r
            LEFT JOIN products p ON p.id = r.product_id
            WHERE r.user_id = :user_id
            LIMIT :limit
            """,
            {"user_id": user_id, "limit": limit},
        )
        return [ProductReaction(product_name=r["product_name"], reaction=r["reaction"]) for r in rows]

    def get_routine_products(self, user_id: str) -> List[RoutineProduct]:
        """Products of every active routine, in routine then step order."""
        rows = self._fetch(
            """
            SELECT p.name_en AS name, p.brand_en AS brand, p.category,
                   ur.routine_type, rp.step_order
            FROM user_routines ur
            JOIN routine_products rp ON rp.routine_id = ur.id
            JOIN products p ON p.id = rp.product_id
            WHERE ur.user_id = :user_id AND ur.is_active = TRUE
            ORDER BY ur.routine_type, rp.step_order
            """,
            {"user_id": user_id},
        )
        return [RoutineProduct(**r) for r in rows]

    def get_ingredient_effectiveness(
        self, skin_type: str, min_sample: int, limit: int
    ) -> List[Dict[str, Any]]:
        """Top effective ingredients for a skin type (or for all skin types)."""
        return self._fetch(
            """
            SELECT e.effectiveness_score, e.sample_size, e.concern,
                   i.name_en AS ingredient_name, i.function AS ingredient_function
            FROM ingredient_effectiveness e
            JOIN ingredients i ON i.id = e.ingredient_id
            WHERE (e.skin_type = :skin_type OR e.skin_type = '__all__')
              AND e.sample_size >= :min_sample
            ORDER BY e.effectiveness_score DESC
            LIMIT :limit
            """,
            {"skin_type": skin_type, "min_sample": min_sample, "limit": limit},
        )

    def get_seasonal_pattern(self, climate: str) -> Optional[Dict[str, Any]]:
        """Latest seasonal pattern for a climate (stored in the skin_type column)."""
        rows = self._fetch(
            """
            SELECT data, pattern_description
            FROM learning_patterns
            WHERE pattern_type = 'seasonal' AND skin_type = :climate
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            {"climate": climate},
        )
        return rows[0] if rows else None

    def get_trend_signals(self, limit: int) -> List[Dict[str, Any]]:
        return self._fetch(
            """
            SELECT trend_name, status, signal_strength
            FROM trend_signals
            WHERE status IN ('emerging', 'trending')
            ORDER BY signal_strength DESC
            LIMIT :limit
            """,
            {"limit": limit},
        )
