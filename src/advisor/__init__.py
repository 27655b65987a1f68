"""
Conversational advisor - specialist routing, prompt composition, streaming.

Public API:
    build_advisor()        → AdvisorOrchestrator (fully wired)   [advisor.orchestrator]
    AdvisorOrchestrator    → streaming orchestrator              [advisor.orchestrator]
    SpecialistRouter       → keyword classifier
    detect_specialist()    → message → specialist id or None
    SPECIALISTS            → registry of the six specialists

The orchestrator is imported from ``advisor.orchestrator`` directly; this
package only re-exports modules with no memory-layer dependencies, since
``memory.context_loader`` imports ``advisor.errors``.
"""

from .errors import (
    AdvisorError,
    ConversationNotFound,
    ContextSourceError,
    ExtractionParseError,
    GenerationCancelled,
    NothingToRetry,
    PersistenceError,
    UpstreamGenerationError,
)
from .router import RouteDecision, SpecialistRouter, detect_specialist
from .specialists import SPECIALISTS, SPECIALIST_PRIORITY, SpecialistProfile, get_specialist

__all__ = [
    "AdvisorError",
    "ConversationNotFound",
    "ContextSourceError",
    "ExtractionParseError",
    "GenerationCancelled",
    "NothingToRetry",
    "PersistenceError",
    "UpstreamGenerationError",
    "RouteDecision",
    "SpecialistRouter",
    "detect_specialist",
    "SPECIALISTS",
    "SPECIALIST_PRIORITY",
    "SpecialistProfile",
    "get_specialist",
]
