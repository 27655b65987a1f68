"""
Advisor Orchestrator - main streaming loop.

Flow (one exchange, serialized per conversation):
  1. Resolve the specialist (requested, or keyword router).
  2. Load history (when not supplied) and the user's memory context.
  3. Compose the system prompt (persona + USER CONTEXT + ACTIVE SPECIALIST).
  4. Persist the user turn.
  5. Stream the answer from the chat model, yielding each text delta.
  6. Persist the assistant turn once, via ``StreamAccumulator.finalize()``.
  7. Schedule background jobs: title (first exchange), insight (specialist).

Cancellation (token or consumer closing the stream) stores whatever was
generated as a ``partial`` assistant turn and skips step 7. Model failures
raise ``UpstreamGenerationError`` and store no assistant turn.
"""

import asyncio
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from functools import partial
from loguru import logger
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from advisor.background import BackgroundJobRunner
from advisor.errors import (
    AdvisorError,
    ConversationNotFound,
    GenerationCancelled,
    NothingToRetry,
    PersistenceError,
    UpstreamGenerationError,
)
from advisor.images import image_blocks
from advisor.insight_extractor import InsightExtractor
from advisor.prompts import build_system_prompt, get_persona
from advisor.router import SpecialistRouter
from advisor.specialists import is_specialist
from advisor.streaming import CancellationToken, StreamAccumulator
from advisor.title_generator import TitleGenerator
from infrastructure.config import HISTORY_LIMIT
from infrastructure.observability import observe, update_current_observation, update_current_trace
from memory.context_loader import ContextLoader
from memory.schemas import Conversation, ConversationStoreProtocol, Message, MessageStatus


class _Detect:
    """Sentinel: no specialist was requested, run the router."""

    def __repr__(self) -> str:
        return "DETECT_SPECIALIST"


DETECT_SPECIALIST: Any = _Detect()

RequestedSpecialist = Union[Optional[str], _Detect]


class ConversationState(str, Enum):
    NEW = "new"
    AWAITING_ANSWER = "awaiting_answer"
    AWAITING_TITLE = "awaiting_title"
    TITLED = "titled"


def conversation_state(
    conversation: Optional[Conversation], messages: Sequence[Message]
) -> ConversationState:
    """Derive the conversation's lifecycle state from its stored log."""
    if not messages:
        return ConversationState.NEW
    if messages[-1].role == "user":
        return ConversationState.AWAITING_ANSWER
    if conversation is None or conversation.title is None:
        return ConversationState.AWAITING_TITLE
    return ConversationState.TITLED


@dataclass
class AdvisorResult:
    """
    Complete (non-streamed) advisor answer.

    Attributes:
        full_text: Concatenation of every streamed delta.
        specialist_type: Specialist the exchange ran under (None = general).
        conversation_id: Conversation the exchange was stored in.
    """

    full_text: str
    specialist_type: Optional[str] = None
    conversation_id: Optional[str] = None


class ConversationLocks:
    """One ``asyncio.Lock`` per conversation, dropped when nobody holds it."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, conversation_id: str):
        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        self._users[conversation_id] = self._users.get(conversation_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[conversation_id] -= 1
            if self._users[conversation_id] == 0:
                del self._users[conversation_id]
                del self._locks[conversation_id]

    def __len__(self) -> int:
        return len(self._locks)


def _chunk_text(chunk: Any) -> str:
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part)
            for part in content
        )
    return ""


class AdvisorOrchestrator:
    """
    Ties routing, memory, prompt composition, streaming and persistence together.

    Dependencies (injected via '__init__'):
        llm_chat           - LangChain ChatOpenAI (streaming)
        store              - ConversationStore (blocking; run via asyncio.to_thread)
        context_loader     - ContextLoader
        title_generator    - TitleGenerator
        insight_extractor  - InsightExtractor
        jobs               - BackgroundJobRunner
    """

    def __init__(
        self,
        llm_chat: Any,
        store: ConversationStoreProtocol,
        context_loader: ContextLoader,
        title_generator: TitleGenerator,
        insight_extractor: InsightExtractor,
        jobs: Optional[BackgroundJobRunner] = None,
        router: Optional[SpecialistRouter] = None,
        locks: Optional[ConversationLocks] = None,
        history_limit: int = HISTORY_LIMIT,
        persona: Optional[str] = None,
    ) -> None:
        self.llm_chat = llm_chat
        self.store = store
        self.context_loader = context_loader
        self.title_generator = title_generator
        self.insight_extractor = insight_extractor
        self.jobs = jobs or BackgroundJobRunner()
        self.router = router or SpecialistRouter()
        self.locks = locks or ConversationLocks()
        self.history_limit = history_limit
        self.persona = persona
        self._persona_lock = asyncio.Lock()

    # public entry points

    def resolve_specialist(self, message: str, requested: RequestedSpecialist = DETECT_SPECIALIST) -> Optional[str]:
        """
        Requested specialist wins (explicit None = general advisor);
        otherwise the keyword router decides.
        """
        if requested is DETECT_SPECIALIST:
            return self.router.detect(message)
        if requested is None:
            return None
        if not is_specialist(requested):
            raise ValueError(f"Unknown specialist: {requested}")
        return requested

    async def owned_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        """Load a conversation; ``ConversationNotFound`` unless ``user_id`` owns it."""
        conversation = await asyncio.to_thread(self.store.get_conversation, conversation_id)
        if conversation is None or conversation.user_id != user_id:
            raise ConversationNotFound(f"conversation {conversation_id} not found")
        return conversation

    async def stream_response(
        self,
        user_id: str,
        conversation_id: str,
        message: str,
        image_urls: Sequence[str] = (),
        history: Optional[Sequence[Message]] = None,
        requested_specialist: RequestedSpecialist = DETECT_SPECIALIST,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """
        Stream the advisor's answer to ``message`` as text deltas.

        ``history`` is the prior log in chronological order; when None it is
        loaded from the store while the conversation lock is held.
        """
        specialist = self.resolve_specialist(message, requested_specialist)
        token = cancel_token or CancellationToken()

        async with self.locks.hold(conversation_id):
            if history is None:
                history = await self._load_history(conversation_id)
            system_prompt = await self._prepare(user_id, conversation_id, specialist, history)

            await self._persist(Message(
                conversation_id=conversation_id,
                role="user",
                content=message,
                image_urls=list(image_urls),
            ))

            async with aclosing(self._generate(
                conversation_id, specialist, system_prompt, history, message, image_urls, token,
            )) as deltas:
                async for delta in deltas:
                    yield delta

    async def retry_response(
        self,
        user_id: str,
        conversation_id: str,
        requested_specialist: RequestedSpecialist = DETECT_SPECIALIST,
        cancel_token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        """
        Answer the last stored user turn of an AWAITING_ANSWER conversation.

        No new user turn is stored.

        Raises:
            NothingToRetry: if the last stored turn is not a user turn.
        """
        token = cancel_token or CancellationToken()

        async with self.locks.hold(conversation_id):
            messages = await self._load_history(conversation_id)
            if conversation_state(None, messages) is not ConversationState.AWAITING_ANSWER:
                raise NothingToRetry(f"conversation {conversation_id} has no unanswered turn")
            pending, history = messages[-1], messages[:-1]
            specialist = self.resolve_specialist(pending.content, requested_specialist)
            system_prompt = await self._prepare(user_id, conversation_id, specialist, history)

            async with aclosing(self._generate(
                conversation_id, specialist, system_prompt, history,
                pending.content, pending.image_urls, token,
            )) as deltas:
                async for delta in deltas:
                    yield delta

    @observe(name="advisor_get_response")
    async def get_response(
        self,
        user_id: str,
        conversation_id: str,
        message: str,
        image_urls: Sequence[str] = (),
        history: Optional[Sequence[Message]] = None,
        requested_specialist: RequestedSpecialist = DETECT_SPECIALIST,
    ) -> AdvisorResult:
        """Non-streaming entry point: drain ``stream_response`` into one result."""
        specialist = self.resolve_specialist(message, requested_specialist)
        parts: List[str] = []
        async for delta in self.stream_response(
            user_id, conversation_id, message, image_urls, history, requested_specialist=specialist,
        ):
            parts.append(delta)
        return AdvisorResult("".join(parts), specialist, conversation_id)

    # pipeline steps

    async def _resolve_persona(self) -> str:
        """Fetch the persona once per orchestrator, in a worker thread."""
        if self.persona is not None:
            return self.persona
        async with self._persona_lock:
            if self.persona is None:
                self.persona = await asyncio.to_thread(get_persona)
                logger.info("Advisor persona resolved ({} chars)", len(self.persona))
        return self.persona

    @observe(name="advisor_prepare")
    async def _prepare(
        self,
        user_id: str,
        conversation_id: str,
        specialist: Optional[str],
        history: Sequence[Message],
    ) -> str:
        """Load memory context and compose the system prompt."""
        update_current_trace(
            user_id=user_id,
            session_id=conversation_id,
            tags=["advisor", specialist or "general"],
        )
        context = await self.context_loader.load_user_context(user_id)
        persona = await self._resolve_persona()
        system_prompt = build_system_prompt(context, specialist, history, persona=persona)
        update_current_observation(metadata={
            "specialist": specialist,
            "history_turns": len(history),
            "prompt_chars": len(system_prompt),
        })
        return system_prompt

    async def _generate(
        self,
        conversation_id: str,
        specialist: Optional[str],
        system_prompt: str,
        history: Sequence[Message],
        message: str,
        image_urls: Sequence[str],
        token: CancellationToken,
    ) -> AsyncIterator[str]:
        log = logger.bind(conversation_id=conversation_id, specialist=specialist or "general")
        accumulator = StreamAccumulator(partial(self._persist_answer, conversation_id, specialist))
        chat_messages = self._to_chat_messages(system_prompt, history, message, image_urls)
        first_exchange = not any(
            m.role == "assistant" and m.status == "complete" for m in history
        )

        status: Optional[MessageStatus] = None
        try:
            token.raise_if_cancelled()
            stream = self.llm_chat.astream(chat_messages)
            try:
                async for chunk in stream:
                    token.raise_if_cancelled()
                    delta = _chunk_text(chunk)
                    if not delta:
                        continue
                    accumulator.add(delta)
                    yield delta
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
            status = "complete"
        except GenerationCancelled:
            status = "partial"
            log.info("Generation cancelled after {} chars", len(accumulator.text))
        except (GeneratorExit, asyncio.CancelledError):
            status = "partial"
            log.info("Stream closed by consumer after {} chars", len(accumulator.text))
            raise
        except AdvisorError:
            raise
        except Exception as e:
            log.error("Chat model failed: {}", e)
            raise UpstreamGenerationError(
                f"completion service error: {e}", partial_text=accumulator.text,
            ) from e
        finally:
            if status == "partial":
                await self._finalize_partial(accumulator, log)

        if status != "complete":
            return
        await accumulator.finalize("complete")
        log.info("Answer stored ({} chars)", len(accumulator.text))
        self._schedule_background(
            conversation_id, specialist, message, accumulator.text, first_exchange,
        )

    async def _finalize_partial(self, accumulator: StreamAccumulator, log) -> None:
        try:
            stored = await accumulator.finalize("partial")
        except Exception as e:
            log.error("Failed to store partial answer: {}", e)
            return
        if stored is not None:
            log.info("Partial answer stored (seq={})", stored.seq)

    def _schedule_background(
        self,
        conversation_id: str,
        specialist: Optional[str],
        user_message: str,
        answer: str,
        first_exchange: bool,
    ) -> None:
        if first_exchange:
            self.jobs.submit(
                "title",
                partial(self._title_job, conversation_id, user_message, answer),
                conversation_id=conversation_id,
            )
        if specialist:
            self.jobs.submit(
                "insight",
                partial(
                    self.insight_extractor.extract_insight,
                    conversation_id, specialist, user_message, answer, store=self.store,
                ),
                conversation_id=conversation_id,
                specialist=specialist,
            )

    async def _title_job(self, conversation_id: str, user_message: str, answer: str) -> Optional[str]:
        title = await self.title_generator.generate_title(user_message, answer)
        if title is None:
            return None
        updated = await asyncio.to_thread(self.store.set_title_if_missing, conversation_id, title)
        return title if updated else None

    # persistence

    async def _load_history(self, conversation_id: str) -> List[Message]:
        try:
            return await asyncio.to_thread(self.store.load_messages, conversation_id, self.history_limit)
        except Exception as e:
            raise PersistenceError(f"failed to load history: {e}") from e

    async def _persist(self, message: Message) -> Message:
        try:
            return await asyncio.to_thread(self.store.append_message, message)
        except Exception as e:
            raise PersistenceError(f"failed to store {message.role} turn: {e}") from e

    async def _persist_answer(
        self, conversation_id: str, specialist: Optional[str], text: str, status: MessageStatus,
    ) -> Message:
        return await self._persist(Message(
            conversation_id=conversation_id,
            role="assistant",
            content=text,
            specialist_type=specialist,
            status=status,
        ))

    # helpers

    @staticmethod
    def _to_chat_messages(
        system_prompt: str,
        history: Sequence[Message],
        message: str,
        image_urls: Sequence[str],
    ) -> List[BaseMessage]:
        """System prompt + ordered history + the new turn (images on the new turn only)."""
        chat: List[BaseMessage] = [SystemMessage(content=system_prompt)]
        for turn in history:
            if not turn.content:
                continue
            if turn.role == "user":
                chat.append(HumanMessage(content=turn.content))
            else:
                chat.append(AIMessage(content=turn.content))

        blocks = image_blocks(image_urls)
        if blocks:
            chat.append(HumanMessage(content=[*blocks, {"type": "text", "text": message}]))
        else:
            chat.append(HumanMessage(content=message))
        return chat


# Factory: build a fully-wired orchestrator from config


def build_advisor() -> AdvisorOrchestrator:
    """
    Convenience factory that constructs and wires all components.

    Reads config / env for API keys and database URLs.

    Returns:
        A fully initialised ``AdvisorOrchestrator``.
    """
    from dotenv import load_dotenv

    load_dotenv()

    # Eagerly init LangFuse so child spans are captured
    from infrastructure.observability import get_langfuse

    get_langfuse()

    from infrastructure.config import INSIGHT_MAX_TOKENS, TITLE_MAX_TOKENS
    from infrastructure.llm import get_background_llm, get_chat_llm, model_name
    from memory.context_store import UserContextStore
    from memory.conversation_store import ConversationStore

    llm_chat = get_chat_llm()
    llm_title = get_background_llm(max_tokens=TITLE_MAX_TOKENS)
    llm_insight = get_background_llm(max_tokens=INSIGHT_MAX_TOKENS)

    logger.info("LLM models loaded:")
    logger.info("   Chat (streamed) : {}", model_name(llm_chat))
    logger.info("   Background      : {}", model_name(llm_title))

    store = ConversationStore()
    advisor = AdvisorOrchestrator(
        llm_chat=llm_chat,
        store=store,
        context_loader=ContextLoader(UserContextStore()),
        title_generator=TitleGenerator(llm_title),
        insight_extractor=InsightExtractor(llm_insight),
        jobs=BackgroundJobRunner(),
    )
    logger.info("Advisor orchestrator ready")
    return advisor
