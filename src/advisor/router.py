"""
Specialist Router - keyword-based intent classification.

Takes a user message and returns a ``RouteDecision`` naming at most one
specialist. Pure and deterministic: no I/O, no model call.

Rules:
    1. Score each specialist by the number of distinct trigger keywords that
       occur as substrings of the lower-cased message. The highest score wins
       if it is at least ``ROUTER_MIN_SCORE``; ties go to the earlier
       specialist in ``SPECIALIST_PRIORITY``.
    2. Otherwise the first specialist (priority order) with a matching
       keyword longer than ``ROUTER_STRONG_KEYWORD_LENGTH`` characters wins.
    3. Otherwise no specialist.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from advisor.specialists import SPECIALISTS, SPECIALIST_PRIORITY
from infrastructure.config import ROUTER_MIN_SCORE, ROUTER_STRONG_KEYWORD_LENGTH


@dataclass
class RouteDecision:
    """
    Output of the router.

    Attributes:
        specialist_type: Selected specialist, or None for the general advisor.
        reason: ``score`` | ``strong_keyword`` | ``none``.
        scores: Distinct keyword hits per specialist.
    """

    specialist_type: Optional[str] = None
    reason: str = "none"
    scores: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class _CompiledSpecialist:
    type: str
    keywords: Tuple[str, ...]
    strong_keywords: Tuple[str, ...]


def _compile(
    priority: Iterable[str], min_strong_length: int
) -> Tuple[_CompiledSpecialist, ...]:
    compiled = []
    for specialist_type in priority:
        # dict.fromkeys dedupes while keeping declaration order
        keywords = tuple(dict.fromkeys(
            kw.lower() for kw in SPECIALISTS[specialist_type].trigger_keywords
        ))
        strong = tuple(kw for kw in keywords if len(kw) > min_strong_length)
        compiled.append(_CompiledSpecialist(specialist_type, keywords, strong))
    return tuple(compiled)


class SpecialistRouter:
    """
    Routes user messages to a specialist.

    Keyword tables are lower-cased and the strong keywords pre-filtered once,
    at construction.
    """

    def __init__(
        self,
        priority: Iterable[str] = SPECIALIST_PRIORITY,
        min_score: int = ROUTER_MIN_SCORE,
        strong_keyword_length: int = ROUTER_STRONG_KEYWORD_LENGTH,
    ) -> None:
        self.min_score = min_score
        self._specialists = _compile(priority, strong_keyword_length)

    def route(self, message: str) -> RouteDecision:
        lower = message.lower()
        scores = {
            entry.type: sum(1 for kw in entry.keywords if kw in lower)
            for entry in self._specialists
        }

        best_type: Optional[str] = None
        best_score = 0
        for entry in self._specialists:
            score = scores[entry.type]
            if score > best_score and score >= self.min_score:
                best_type, best_score = entry.type, score
        if best_type is not None:
            return RouteDecision(best_type, "score", scores)

        for entry in self._specialists:
            if any(kw in lower for kw in entry.strong_keywords):
                return RouteDecision(entry.type, "strong_keyword", scores)

        return RouteDecision(None, "none", scores)

    def detect(self, message: str) -> Optional[str]:
        return self.route(message).specialist_type


_default_router = SpecialistRouter()


def detect_specialist(message: str) -> Optional[str]:
    """Return the specialist identifier for ``message``, or None."""
    return _default_router.detect(message)
