"""Shared fakes: in-memory stores and scripted chat models."""

import uuid
from typing import Any, Dict, List, Optional

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk

from advisor.background import BackgroundJobRunner
from advisor.insight_extractor import InsightExtractor
from advisor.orchestrator import AdvisorOrchestrator
from advisor.title_generator import TitleGenerator
from memory.context_loader import ContextLoader
from memory.schemas import Conversation, Message, SkinProfile, SpecialistInsight


class FakeConversationStore:
    """In-memory ConversationStore with a database-style ``seq`` counter."""

    def __init__(self):
        self.conversations: Dict[str, Conversation] = {}
        self.messages: List[Message] = []
        self.insights: List[SpecialistInsight] = []
        self.fail_append = False
        self._seq = 0

    def create_conversation(self, user_id, specialist_type=None):
        conv = Conversation(id=str(uuid.uuid4()), user_id=user_id, specialist_type=specialist_type)
        self.conversations[conv.id] = conv
        return conv

    def get_conversation(self, conversation_id):
        return self.conversations.get(conversation_id)

    def list_conversations(self, user_id, limit):
        owned = [c for c in self.conversations.values() if c.user_id == user_id]
        return list(reversed(owned))[:limit]

    def append_message(self, message):
        if self.fail_append:
            raise RuntimeError("database unavailable")
        self._seq += 1
        stored = Message(
            conversation_id=message.conversation_id,
            role=message.role,
            content=message.content,
            image_urls=list(message.image_urls),
            specialist_type=message.specialist_type,
            status=message.status,
            id=str(uuid.uuid4()),
            seq=self._seq,
        )
        self.messages.append(stored)
        return stored

    def load_messages(self, conversation_id, limit):
        rows = [m for m in self.messages if m.conversation_id == conversation_id]
        return rows[-limit:]

    def set_title_if_missing(self, conversation_id, title):
        conv = self.conversations.get(conversation_id)
        if conv is None or conv.title is not None:
            return False
        conv.title = title
        return True

    def save_specialist_insight(self, insight):
        self.insights.append(insight)

    def log(self, conversation_id):
        return [m for m in self.messages if m.conversation_id == conversation_id]


class FakeContextStore:
    """UserContextStore returning canned rows; names in ``failing`` raise."""

    def __init__(self, profile: Optional[SkinProfile] = None):
        self.profile = profile
        self.conversations: List[Conversation] = []
        self.reactions = []
        self.routine = []
        self.effectiveness: List[Dict[str, Any]] = []
        self.seasonal: Optional[Dict[str, Any]] = None
        self.trends: List[Dict[str, Any]] = []
        self.failing = set()
        self.calls: List[str] = []

    def _call(self, name, value):
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} exploded")
        return value

    def get_skin_profile(self, user_id):
        return self._call("get_skin_profile", self.profile)

    def get_recent_conversations(self, user_id, limit):
        return self._call("get_recent_conversations", self.conversations[:limit])

    def get_product_reactions(self, user_id, limit):
        return self._call("get_product_reactions", self.reactions[:limit])

    def get_routine_products(self, user_id):
        return self._call("get_routine_products", self.routine)

    def get_ingredient_effectiveness(self, skin_type, min_sample, limit):
        return self._call("get_ingredient_effectiveness", self.effectiveness[:limit])

    def get_seasonal_pattern(self, climate):
        return self._call("get_seasonal_pattern", self.seasonal)

    def get_trend_signals(self, limit):
        return self._call("get_trend_signals", self.trends[:limit])


class FakeChatLLM:
    """Streams scripted chunks; ``fail_after`` raises after that many chunks."""

    model_name = "fake-chat"

    def __init__(self, chunks=("Hello", " there", "!"), fail_after: Optional[int] = None):
        self.chunks = list(chunks)
        self.fail_after = fail_after
        self.calls: List[List] = []

    async def astream(self, messages):
        self.calls.append(list(messages))
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError("completion service unavailable")
            yield AIMessageChunk(content=chunk)
        if self.fail_after is not None and self.fail_after >= len(self.chunks):
            raise RuntimeError("completion service unavailable")


class FakeBackgroundLLM:
    """Answers ``ainvoke`` with scripted replies; no structured output support."""

    model_name = "fake-background"

    def __init__(self, replies=("Short Title",), failures: int = 0):
        self.replies = list(replies)
        self.failures = failures
        self.calls: List[List] = []

    async def ainvoke(self, messages):
        self.calls.append(list(messages))
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("rate limited")
        reply = self.replies[min(len(self.calls), len(self.replies)) - 1]
        return AIMessage(content=reply)

    def with_structured_output(self, schema, **kwargs):
        raise NotImplementedError("structured output not supported")


BUDGET_INSIGHT_REPLY = (
    'Here is the extraction: {"budget_range": "under $25", '
    '"expensive_products": ["Sulwhasoo First Care Serum"], '
    '"dupes_recommended": ["Beauty of Joseon Glow Serum"], '
    '"estimated_savings": "$80"}'
)


@pytest.fixture
def store():
    return FakeConversationStore()


@pytest.fixture
def context_store():
    return FakeContextStore()


@pytest.fixture
def chat_llm():
    return FakeChatLLM()


@pytest.fixture
def title_llm():
    return FakeBackgroundLLM(replies=('"Budget Picks For Oily Skin"',))


@pytest.fixture
def insight_llm():
    return FakeBackgroundLLM(replies=(BUDGET_INSIGHT_REPLY,))


@pytest.fixture
def jobs():
    return BackgroundJobRunner(max_concurrency=2, retry_attempts=2, backoff_min=0, backoff_max=0)


@pytest.fixture
def orchestrator(store, context_store, chat_llm, title_llm, insight_llm, jobs):
    return AdvisorOrchestrator(
        llm_chat=chat_llm,
        store=store,
        context_loader=ContextLoader(context_store),
        title_generator=TitleGenerator(title_llm),
        insight_extractor=InsightExtractor(insight_llm, retry_attempts=2, backoff_min=0, backoff_max=0),
        jobs=jobs,
        persona="PERSONA",
    )


@pytest.fixture
def conversation(store):
    return store.create_conversation("user-1")


async def collect(agen) -> str:
    return "".join([delta async for delta in agen])
