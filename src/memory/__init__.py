"""
Memory system - schemas, stores, and the per-user context loader.

Memory types:
  - Conversation log: advisor conversations and messages (Supabase)
  - User context: skin profile, reactions, routine (read-only, Supabase)
  - Learning insights: community aggregates (read-only, best effort)
  - Specialist insights: structured facts mined from exchanges (write-only)
"""

from .schemas import (
    Conversation,
    Message,
    SkinProfile,
    ProductReaction,
    RoutineProduct,
    ConversationMemory,
    LearningInsight,
    UserContext,
    SpecialistInsight,
    ConversationStoreProtocol,
    UserContextStoreProtocol,
)
from .conversation_store import ConversationStore
from .context_store import UserContextStore
from .context_loader import ContextLoader

__all__ = [
    # Schemas
    "Conversation",
    "Message",
    "SkinProfile",
    "ProductReaction",
    "RoutineProduct",
    "ConversationMemory",
    "LearningInsight",
    "UserContext",
    "SpecialistInsight",
    # Protocols
    "ConversationStoreProtocol",
    "UserContextStoreProtocol",
    # Stores
    "ConversationStore",
    "UserContextStore",
    # Loader
    "ContextLoader",
]
