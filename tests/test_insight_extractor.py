"""Tests for specialist insight extraction."""
import pytest

from advisor.errors import ExtractionParseError
from advisor.insight_extractor import InsightExtractor, parse_json_object
from advisor.specialists import BudgetInsight
from conftest import BUDGET_INSIGHT_REPLY, FakeBackgroundLLM, FakeConversationStore


class StructuredLLM(FakeBackgroundLLM):
    """Supports ``with_structured_output`` by returning a fixed result."""

    def __init__(self, result):
        super().__init__(replies=("unused",))
        self.result = result
        self.bound_schema = None

    def with_structured_output(self, schema, **kwargs):
        self.bound_schema = schema
        outer = self

        class _Bound:
            async def ainvoke(self, messages):
                return outer.result

        return _Bound()


def test_parse_json_object_finds_embedded_object():
    assert parse_json_object('Sure! {"a": 1, "b": [2]} hope that helps') == {"a": 1, "b": [2]}


def test_parse_json_object_skips_broken_prefix():
    assert parse_json_object('{not json} then {"ok": true}') == {"ok": True}


def test_parse_json_object_handles_nested_braces():
    assert parse_json_object('{"outer": {"inner": "}"}}') == {"outer": {"inner": "}"}}


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", '{"unterminated": '])
def test_parse_json_object_rejects(text):
    with pytest.raises(ExtractionParseError):
        parse_json_object(text)


@pytest.mark.asyncio
async def test_text_fallback_extracts_valid_insight():
    extractor = InsightExtractor(FakeBackgroundLLM(replies=(BUDGET_INSIGHT_REPLY,)))
    insight = await extractor.extract("conv-1", "budget_optimizer", "cheap dupes?", "Try these...")

    assert insight.conversation_id == "conv-1"
    assert insight.insight_type == "conversation_extraction"
    assert insight.data["budget_range"] == "under $25"


@pytest.mark.asyncio
async def test_structured_output_is_preferred():
    result = BudgetInsight(
        budget_range="$10-20",
        expensive_products=[],
        dupes_recommended=["Purito Centella Serum"],
        estimated_savings="$15",
    )
    llm = StructuredLLM(result)
    insight = await InsightExtractor(llm).extract("c", "budget_optimizer", "q", "a")

    assert llm.bound_schema is BudgetInsight
    assert llm.calls == []
    assert insight.data["dupes_recommended"] == ["Purito Centella Serum"]


@pytest.mark.asyncio
async def test_payload_failing_schema_is_dropped():
    llm = FakeBackgroundLLM(replies=('{"dupes_recommended": "Purito Centella Serum"}',))
    assert await InsightExtractor(llm).extract("c", "budget_optimizer", "q", "a") is None


@pytest.mark.asyncio
async def test_extra_fields_are_ignored():
    reply = (
        '{"allergies": ["fragrance"], "reactions_reported": [], "safe_products": [], '
        '"flagged_ingredients": ["linalool"], "mood": "worried"}'
    )
    insight = await InsightExtractor(FakeBackgroundLLM(replies=(reply,))).extract(
        "c", "sensitivity_guardian", "q", "a",
    )
    assert "mood" not in insight.data
    assert insight.data["flagged_ingredients"] == ["linalool"]


@pytest.mark.asyncio
async def test_unknown_specialist_yields_nothing():
    llm = FakeBackgroundLLM()
    assert await InsightExtractor(llm).extract("c", "astrologer", "q", "a") is None
    assert llm.calls == []


@pytest.mark.asyncio
async def test_extract_insight_never_raises():
    store = FakeConversationStore()
    extractor = InsightExtractor(FakeBackgroundLLM(failures=5), retry_attempts=2, backoff_min=0, backoff_max=0)

    assert await extractor.extract_insight("c", "budget_optimizer", "q", "a", store=store) is None
    assert len(extractor.llm.calls) == 2
    assert store.insights == []


@pytest.mark.asyncio
async def test_extract_insight_retries_transient_failure():
    store = FakeConversationStore()
    llm = FakeBackgroundLLM(replies=(BUDGET_INSIGHT_REPLY,), failures=1)
    extractor = InsightExtractor(llm, retry_attempts=2, backoff_min=0, backoff_max=0)

    insight = await extractor.extract_insight("c", "budget_optimizer", "q", "a", store=store)

    assert store.insights == [insight]
    assert insight.data["dupes_recommended"] == ["Beauty of Joseon Glow Serum"]


@pytest.mark.asyncio
async def test_extract_insight_stores_valid_insight():
    store = FakeConversationStore()
    extractor = InsightExtractor(FakeBackgroundLLM(replies=(BUDGET_INSIGHT_REPLY,)))

    insight = await extractor.extract_insight("c", "budget_optimizer", "q", "a", store=store)

    assert store.insights == [insight]


@pytest.mark.asyncio
async def test_extract_insight_skips_invalid_reply():
    store = FakeConversationStore()
    extractor = InsightExtractor(FakeBackgroundLLM(replies=("nothing useful",)))

    assert await extractor.extract_insight("c", "budget_optimizer", "q", "a", store=store) is None
    assert store.insights == []


@pytest.mark.asyncio
async def test_partial_payload_keeps_missing_fields_empty():
    store = FakeConversationStore()
    llm = FakeBackgroundLLM(replies=('{"ingredients_discussed": ["retinol"]}',))

    insight = await InsightExtractor(llm).extract_insight("c", "ingredient_analyst", "q", "a", store=store)

    assert store.insights == [insight]
    assert insight.data == {
        "ingredients_discussed": ["retinol"],
        "sensitivities_found": [],
        "preferences": [],
        "conflicts": [],
    }


def test_budget_schema_defaults_optional_strings():
    insight = BudgetInsight.model_validate({"dupes_recommended": ["COSRX Snail Mucin"]})
    assert insight.budget_range is None
    assert insight.estimated_savings is None
    assert insight.expensive_products == []
