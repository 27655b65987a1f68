"""Tests for the streaming advisor orchestrator."""
import asyncio
import threading

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage

from advisor.errors import (
    ConversationNotFound,
    NothingToRetry,
    PersistenceError,
    UpstreamGenerationError,
)
from advisor.orchestrator import ConversationState, conversation_state
from advisor.prompts import advisor_prompts
from advisor.streaming import CancellationToken
from conftest import collect
from memory.schemas import Conversation, Message, SkinProfile

BUDGET_QUESTION = "What's a cheap dupe alternative to save money"


def _log(store, conversation):
    return [(m.role, m.content, m.status) for m in store.log(conversation.id)]


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_round_trip_persists_both_turns(orchestrator, store, conversation, chat_llm, jobs):
    text = await collect(orchestrator.stream_response("user-1", conversation.id, "Hi Yuri!"))

    assert text == "Hello there!"
    assert _log(store, conversation) == [
        ("user", "Hi Yuri!", "complete"),
        ("assistant", "Hello there!", "complete"),
    ]
    assert store.log(conversation.id)[1].specialist_type is None

    system = chat_llm.calls[0][0]
    assert isinstance(system, SystemMessage)
    assert system.content.startswith("PERSONA")
    assert "# ACTIVE SPECIALIST" not in system.content
    await jobs.drain()


@pytest.mark.asyncio
async def test_first_exchange_is_titled_once(orchestrator, store, conversation, title_llm, jobs):
    await collect(orchestrator.stream_response("user-1", conversation.id, "Hi Yuri!"))
    await jobs.drain()
    assert store.conversations[conversation.id].title == "Budget Picks For Oily Skin"

    await collect(orchestrator.stream_response("user-1", conversation.id, "And for winter?"))
    await jobs.drain()
    assert len(title_llm.calls) == 1


@pytest.mark.asyncio
async def test_second_title_job_keeps_first_title(orchestrator, store, conversation, title_llm):
    title_llm.replies = ['"Oily Skin Budget Picks"', '"Winter Barrier Repair"']

    first = await orchestrator._title_job(conversation.id, "Hi Yuri!", "Hello there!")
    second = await orchestrator._title_job(conversation.id, "Hi Yuri!", "Hello there!")

    assert first == "Oily Skin Budget Picks"
    assert second is None
    assert len(title_llm.calls) == 2
    assert store.conversations[conversation.id].title == "Oily Skin Budget Picks"


@pytest.mark.asyncio
async def test_persona_is_fetched_once_off_the_event_loop(
    orchestrator, conversation, chat_llm, jobs, monkeypatch,
):
    loop_thread = threading.get_ident()
    fetches = []

    def fake_fetch_prompt(name, *, fallback, **kwargs):
        fetches.append(threading.get_ident())
        return "MANAGED PERSONA"

    monkeypatch.setattr(advisor_prompts, "fetch_prompt", fake_fetch_prompt)
    orchestrator.persona = None

    await collect(orchestrator.stream_response("user-1", conversation.id, "first question"))
    await collect(orchestrator.stream_response("user-1", conversation.id, "second question"))
    await jobs.drain()

    assert len(fetches) == 1
    assert fetches[0] != loop_thread
    assert all(call[0].content.startswith("MANAGED PERSONA") for call in chat_llm.calls)


@pytest.mark.asyncio
async def test_history_is_replayed_in_order(orchestrator, conversation, chat_llm, jobs):
    await collect(orchestrator.stream_response("user-1", conversation.id, "first question"))
    await collect(orchestrator.stream_response("user-1", conversation.id, "second question"))
    await jobs.drain()

    sent = chat_llm.calls[1]
    assert [type(m) for m in sent] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]
    assert [m.content for m in sent[1:]] == ["first question", "Hello there!", "second question"]


@pytest.mark.asyncio
async def test_specialist_exchange_stores_insight(orchestrator, store, conversation, chat_llm, jobs):
    await collect(orchestrator.stream_response("user-1", conversation.id, BUDGET_QUESTION))
    await jobs.drain()

    assert "# ACTIVE SPECIALIST: Budget Optimizer" in chat_llm.calls[0][0].content
    assert store.log(conversation.id)[1].specialist_type == "budget_optimizer"
    [insight] = store.insights
    assert insight.specialist_type == "budget_optimizer"
    assert insight.conversation_id == conversation.id
    assert insight.data["dupes_recommended"] == ["Beauty of Joseon Glow Serum"]


@pytest.mark.asyncio
async def test_invalid_insight_json_stores_nothing(orchestrator, store, conversation, insight_llm, jobs):
    insight_llm.replies = ["Sorry, I can't extract anything here."]

    await collect(orchestrator.stream_response("user-1", conversation.id, BUDGET_QUESTION))
    await jobs.drain()

    assert store.insights == []
    assert len(insight_llm.calls) == 1


@pytest.mark.asyncio
async def test_explicit_none_skips_router(orchestrator, store, conversation, chat_llm, insight_llm, jobs):
    await collect(orchestrator.stream_response(
        "user-1", conversation.id, BUDGET_QUESTION, requested_specialist=None,
    ))
    await jobs.drain()

    assert "# ACTIVE SPECIALIST" not in chat_llm.calls[0][0].content
    assert insight_llm.calls == []
    assert store.insights == []


@pytest.mark.asyncio
async def test_requested_specialist_overrides_router(orchestrator, conversation, chat_llm, jobs):
    await collect(orchestrator.stream_response(
        "user-1", conversation.id, "Hi Yuri!", requested_specialist="sensitivity_guardian",
    ))
    await jobs.drain()
    assert "# ACTIVE SPECIALIST: Sensitivity Guardian" in chat_llm.calls[0][0].content


@pytest.mark.asyncio
async def test_unknown_specialist_is_rejected(orchestrator, store, conversation):
    with pytest.raises(ValueError):
        await collect(orchestrator.stream_response(
            "user-1", conversation.id, "Hi", requested_specialist="astrologer",
        ))
    assert store.log(conversation.id) == []


@pytest.mark.asyncio
async def test_oily_skin_budget_scenario(orchestrator, store, context_store, conversation, chat_llm, jobs):
    context_store.profile = SkinProfile(skin_type="oily", skin_concerns=["acne"])

    result = await orchestrator.get_response(
        "user-1", conversation.id, "best affordable products for oily acne-prone skin",
    )
    await jobs.drain()

    assert result.specialist_type == "budget_optimizer"
    assert result.full_text == "Hello there!"
    assert result.conversation_id == conversation.id
    system = chat_llm.calls[0][0].content
    assert "- Skin type: oily" in system
    assert "# ACTIVE SPECIALIST: Budget Optimizer" in system
    assert [i.specialist_type for i in store.insights] == ["budget_optimizer"]


@pytest.mark.asyncio
async def test_only_trusted_images_reach_the_model(orchestrator, store, conversation, chat_llm, jobs):
    urls = ["https://evil.example.com/a.png", "data:image/png;base64,AAAA"]
    await collect(orchestrator.stream_response(
        "user-1", conversation.id, "What is this product?", image_urls=urls,
    ))
    await jobs.drain()

    last = chat_llm.calls[0][-1]
    assert last.content == [
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        {"type": "text", "text": "What is this product?"},
    ]
    assert store.log(conversation.id)[0].image_urls == urls


# ---------------------------------------------------------------------------
# Failures and cancellation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_upstream_failure_keeps_user_turn_only(orchestrator, store, conversation, chat_llm, title_llm, jobs):
    chat_llm.fail_after = 1
    received = []

    with pytest.raises(UpstreamGenerationError) as exc_info:
        async for delta in orchestrator.stream_response("user-1", conversation.id, "Hi Yuri!"):
            received.append(delta)

    assert received == ["Hello"]
    assert exc_info.value.partial_text == "Hello"
    assert _log(store, conversation) == [("user", "Hi Yuri!", "complete")]
    assert jobs.pending == 0
    assert title_llm.calls == []


@pytest.mark.asyncio
async def test_upstream_failure_before_first_delta(orchestrator, store, conversation, chat_llm):
    chat_llm.fail_after = 0
    with pytest.raises(UpstreamGenerationError) as exc_info:
        await collect(orchestrator.stream_response("user-1", conversation.id, "Hi Yuri!"))
    assert exc_info.value.partial_text == ""
    assert [m.role for m in store.log(conversation.id)] == ["user"]


@pytest.mark.asyncio
async def test_cancellation_stores_partial_answer(orchestrator, store, conversation, title_llm, jobs):
    token = CancellationToken()
    received = []

    async for delta in orchestrator.stream_response(
        "user-1", conversation.id, "Hi Yuri!", cancel_token=token,
    ):
        received.append(delta)
        token.cancel("client disconnected")

    assert received == ["Hello"]
    assert _log(store, conversation) == [
        ("user", "Hi Yuri!", "complete"),
        ("assistant", "Hello", "partial"),
    ]
    await jobs.drain()
    assert title_llm.calls == []


@pytest.mark.asyncio
async def test_consumer_closing_stream_stores_partial(orchestrator, store, conversation, jobs):
    stream = orchestrator.stream_response("user-1", conversation.id, "Hi Yuri!")
    assert await stream.__anext__() == "Hello"
    await stream.aclose()

    assert _log(store, conversation)[-1] == ("assistant", "Hello", "partial")
    assert jobs.pending == 0
    assert len(orchestrator.locks) == 0


@pytest.mark.asyncio
async def test_partial_first_answer_still_gets_titled_later(orchestrator, store, conversation, title_llm, jobs):
    token = CancellationToken()
    token.cancel()
    await collect(orchestrator.stream_response("user-1", conversation.id, "Hi", cancel_token=token))
    assert [m.role for m in store.log(conversation.id)] == ["user"]

    await collect(orchestrator.stream_response("user-1", conversation.id, "Hi again"))
    await jobs.drain()
    assert len(title_llm.calls) == 1
    assert store.conversations[conversation.id].title is not None


@pytest.mark.asyncio
async def test_persistence_failure_stops_before_generation(orchestrator, store, conversation, chat_llm):
    store.fail_append = True
    with pytest.raises(PersistenceError):
        await collect(orchestrator.stream_response("user-1", conversation.id, "Hi Yuri!"))
    assert chat_llm.calls == []


# ---------------------------------------------------------------------------
# Ordering and retry
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_concurrent_exchanges_are_serialized(orchestrator, store, conversation, chat_llm, jobs):
    await asyncio.gather(
        collect(orchestrator.stream_response("user-1", conversation.id, "first")),
        collect(orchestrator.stream_response("user-1", conversation.id, "second")),
    )
    await jobs.drain()

    assert [(m.role, m.content) for m in store.log(conversation.id)] == [
        ("user", "first"),
        ("assistant", "Hello there!"),
        ("user", "second"),
        ("assistant", "Hello there!"),
    ]
    seqs = [m.seq for m in store.log(conversation.id)]
    assert seqs == sorted(seqs)
    assert len(chat_llm.calls[1]) == 4
    assert len(orchestrator.locks) == 0


@pytest.mark.asyncio
async def test_retry_answers_pending_turn(orchestrator, store, conversation, chat_llm, jobs):
    store.append_message(Message(conversation.id, "user", BUDGET_QUESTION))

    text = await collect(orchestrator.retry_response("user-1", conversation.id))
    await jobs.drain()

    assert text == "Hello there!"
    log = store.log(conversation.id)
    assert [m.role for m in log] == ["user", "assistant"]
    assert log[1].specialist_type == "budget_optimizer"
    assert chat_llm.calls[0][-1].content == BUDGET_QUESTION
    assert len(chat_llm.calls[0]) == 2


@pytest.mark.asyncio
async def test_retry_without_pending_turn(orchestrator, conversation, jobs):
    await collect(orchestrator.stream_response("user-1", conversation.id, "Hi Yuri!"))
    await jobs.drain()

    with pytest.raises(NothingToRetry):
        await collect(orchestrator.retry_response("user-1", conversation.id))


# ---------------------------------------------------------------------------
# Conversation state
# ---------------------------------------------------------------------------

def test_conversation_state_lifecycle():
    conv = Conversation(id="c", user_id="u")
    user = Message("c", "user", "hi")
    answer = Message("c", "assistant", "hello")

    assert conversation_state(conv, []) is ConversationState.NEW
    assert conversation_state(conv, [user]) is ConversationState.AWAITING_ANSWER
    assert conversation_state(conv, [user, answer]) is ConversationState.AWAITING_TITLE
    conv.title = "Greetings"
    assert conversation_state(conv, [user, answer]) is ConversationState.TITLED
    assert conversation_state(conv, [user, answer, user]) is ConversationState.AWAITING_ANSWER


# ---------------------------------------------------------------------------
# Ownership
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_owned_conversation_returns_callers_conversation(orchestrator, conversation):
    assert await orchestrator.owned_conversation("user-1", conversation.id) == conversation


@pytest.mark.asyncio
@pytest.mark.parametrize("user_id, conversation_id", [("someone-else", None), ("user-1", "missing")])
async def test_owned_conversation_rejects_foreign_or_unknown(orchestrator, conversation, user_id, conversation_id):
    with pytest.raises(ConversationNotFound):
        await orchestrator.owned_conversation(user_id, conversation_id or conversation.id)
