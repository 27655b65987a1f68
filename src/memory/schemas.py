"""
Memory schemas and interfaces.

Dataclasses for conversations, messages, the per-user context snapshot and
specialist insights. Protocol definitions for the stores the advisor
depends on.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Literal, Dict, Any, Protocol


Role = Literal["user", "assistant"]
MessageStatus = Literal["complete", "partial"]
ReactionKind = Literal["holy_grail", "good", "okay", "bad", "broke_me_out"]
InsightKind = Literal["effectiveness", "seasonal", "trend"]


@dataclass
class Conversation:
    """
    A conversation thread owned by one user.

    ``title`` goes from None to a string exactly once (background title job).
    ``specialist_type`` is the specialist pinned when the thread was opened.
    """
    id: str
    user_id: str
    title: Optional[str] = None
    specialist_type: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "specialist_type": self.specialist_type,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Conversation":
        """Create from dictionary."""
        return cls(
            id=str(data["id"]),
            user_id=str(data["user_id"]),
            title=data.get("title"),
            specialist_type=data.get("specialist_type"),
            created_at=_iso(data.get("created_at")),
            updated_at=_iso(data.get("updated_at")),
        )


@dataclass
class Message:
    """
    One entry in the append-only conversation log.

    ``seq`` is assigned by the database and defines replay order.
    """
    conversation_id: str
    role: Role
    content: str
    image_urls: List[str] = field(default_factory=list)
    specialist_type: Optional[str] = None
    status: MessageStatus = "complete"
    id: Optional[str] = None
    seq: Optional[int] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "seq": self.seq,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "image_urls": list(self.image_urls),
            "specialist_type": self.specialist_type,
            "status": self.status,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "Message":
        """Create from dictionary."""
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            seq=data.get("seq"),
            conversation_id=str(data["conversation_id"]),
            role=data["role"],
            content=data["content"],
            image_urls=list(data.get("image_urls") or []),
            specialist_type=data.get("specialist_type"),
            status=data.get("status") or "complete",
            created_at=_iso(data.get("created_at")),
        )


@dataclass
class SkinProfile:
    """The user's skin profile, built during onboarding. Read-only here."""
    skin_type: str = "unknown"
    skin_concerns: List[str] = field(default_factory=list)
    allergies: List[str] = field(default_factory=list)
    fitzpatrick_scale: Optional[int] = None
    climate: Optional[str] = None
    age_range: Optional[str] = None
    budget_range: Optional[str] = None
    experience_level: Optional[str] = None
    onboarding_completed: bool = False

    @classmethod
    def from_dict(cls, data: Dict) -> "SkinProfile":
        """Create from a profile row; NULL array columns become empty lists."""
        return cls(
            skin_type=data.get("skin_type") or "unknown",
            skin_concerns=list(data.get("skin_concerns") or []),
            allergies=list(data.get("allergies") or []),
            fitzpatrick_scale=data.get("fitzpatrick_scale"),
            climate=data.get("climate"),
            age_range=data.get("age_range"),
            budget_range=data.get("budget_range"),
            experience_level=data.get("experience_level"),
            onboarding_completed=bool(data.get("onboarding_completed")),
        )


@dataclass
class ProductReaction:
    product_name: str
    reaction: ReactionKind


@dataclass
class RoutineProduct:
    name: str
    brand: Optional[str] = None
    category: Optional[str] = None
    routine_type: Optional[str] = None
    step_order: Optional[int] = None

    def describe(self) -> str:
        """Prompt line, e.g. ``Water Sleeping Mask (Laneige) - mask``."""
        return f"{self.name} ({self.brand or 'Unknown brand'}) - {self.category or 'other'}"


@dataclass
class ConversationMemory:
    """A recent conversation as remembered in the prompt."""
    conversation_id: str
    title: Optional[str]
    specialist_type: Optional[str]
    summary: str
    timestamp: Optional[str] = None

    @classmethod
    def from_conversation(cls, conv: Conversation) -> "ConversationMemory":
        return cls(
            conversation_id=conv.id,
            title=conv.title,
            specialist_type=conv.specialist_type,
            summary=conv.title or "Untitled conversation",
            timestamp=conv.updated_at,
        )


@dataclass
class LearningInsight:
    """Community-level insight from the learning engine (best effort)."""
    type: InsightKind
    summary: str


@dataclass
class UserContext:
    """
    Everything the advisor knows about a user for one exchange.

    Every list defaults to empty so a brand-new user yields a valid context.
    """
    skin_profile: Optional[SkinProfile] = None
    recent_conversations: List[ConversationMemory] = field(default_factory=list)
    product_reactions: List[ProductReaction] = field(default_factory=list)
    known_allergies: List[str] = field(default_factory=list)
    routine_products: List[RoutineProduct] = field(default_factory=list)
    learning_insights: List[LearningInsight] = field(default_factory=list)


@dataclass
class SpecialistInsight:
    """Structured facts mined from one exchange by a specialist."""
    conversation_id: str
    specialist_type: str
    data: Dict[str, Any]
    insight_type: str = "conversation_extraction"

    def to_dict(self) -> Dict:
        return {
            "conversation_id": self.conversation_id,
            "specialist_type": self.specialist_type,
            "insight_type": self.insight_type,
            "data": self.data,
        }


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


# ============================================================================
# Protocols (interfaces)
# ============================================================================


class ConversationStoreProtocol(Protocol):
    """Conversation log (advisor_conversations / advisor_messages / specialist_insights)."""

    def create_conversation(
        self, user_id: str, specialist_type: Optional[str] = None
    ) -> Conversation:
        ...

    def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        ...

    def list_conversations(self, user_id: str, limit: int) -> List[Conversation]:
        ...

    def append_message(self, message: Message) -> Message:
        """Append and return the stored message (with ``id`` and ``seq``)."""
        ...

    def load_messages(self, conversation_id: str, limit: int) -> List[Message]:
        """Most recent ``limit`` messages, in chronological (``seq``) order."""
        ...

    def set_title_if_missing(self, conversation_id: str, title: str) -> bool:
        """Return True only when this call set the title."""
        ...

    def save_specialist_insight(self, insight: SpecialistInsight) -> None:
        ...


class UserContextStoreProtocol(Protocol):
    """Read-only queries behind the context loader."""

    def get_skin_profile(self, user_id: str) -> Optional[SkinProfile]:
        ...

    def get_recent_conversations(self, user_id: str, limit: int) -> List[Conversation]:
        ...

    def get_product_reactions(self, user_id: str, limit: int) -> List[ProductReaction]:
        ...

    def get_routine_products(self, user_id: str) -> List[RoutineProduct]:
        ...

    def get_ingredient_effectiveness(
        self, skin_type: str, min_sample: int, limit: int
    ) -> List[Dict[str, Any]]:
        ...

    def get_seasonal_pattern(self, climate: str) -> Optional[Dict[str, Any]]:
        ...

    def get_trend_signals(self, limit: int) -> List[Dict[str, Any]]:
        ...
