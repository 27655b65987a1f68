"""Tests for the per-user context loader."""
import pytest

from conftest import FakeContextStore
from memory.context_loader import ContextLoader
from memory.schemas import Conversation, ProductReaction, SkinProfile


@pytest.mark.asyncio
async def test_brand_new_user_gets_empty_context():
    store = FakeContextStore()
    context = await ContextLoader(store).load_user_context("new-user")

    assert context.skin_profile is None
    assert context.recent_conversations == []
    assert context.product_reactions == []
    assert context.known_allergies == []
    assert context.routine_products == []
    assert context.learning_insights == []
    # profile-dependent sources are skipped without a profile
    assert "get_ingredient_effectiveness" not in store.calls
    assert "get_seasonal_pattern" not in store.calls
    assert "get_trend_signals" in store.calls


@pytest.mark.asyncio
async def test_trends_load_without_profile():
    store = FakeContextStore()
    store.trends = [{"trend_name": "PDRN", "status": "emerging"}]

    context = await ContextLoader(store).load_user_context("new-user")

    assert [i.summary for i in context.learning_insights] == [
        "PDRN is currently emerging in the K-beauty community"
    ]


@pytest.mark.asyncio
async def test_full_profile_context():
    store = FakeContextStore(SkinProfile(skin_type="oily", allergies=["fragrance"], climate="humid"))
    store.conversations = [Conversation(id="c1", user_id="u", title="Sunscreen for oily skin")]
    store.reactions = [ProductReaction("COSRX Snail Mucin", "holy_grail")]
    store.effectiveness = [{
        "ingredient_name": "Niacinamide",
        "ingredient_function": "brightening",
        "effectiveness_score": 0.873,
        "sample_size": 42,
        "concern": "acne",
    }]
    store.seasonal = {
        "pattern_description": "Humid summers call for lighter layers",
        "data": {"texture_advice": "Switch to gel creams.", "ingredients_to_emphasize": ["centella"]},
    }

    context = await ContextLoader(store).load_user_context("u")

    assert context.known_allergies == ["fragrance"]
    assert context.recent_conversations[0].summary == "Sunscreen for oily skin"
    summaries = [i.summary for i in context.learning_insights]
    assert summaries[0] == (
        "Users with oily skin report 87% satisfaction with Niacinamide (brightening) "
        "based on 42 reports for acne"
    )
    assert summaries[1] == "Humid summers call for lighter layers. Switch to gel creams. Focus on: centella"


@pytest.mark.asyncio
async def test_failing_source_degrades_to_empty():
    store = FakeContextStore(SkinProfile(skin_type="dry"))
    store.reactions = [ProductReaction("Toner", "good")]
    store.failing = {"get_product_reactions", "get_trend_signals"}

    context = await ContextLoader(store).load_user_context("u")

    assert context.skin_profile.skin_type == "dry"
    assert context.product_reactions == []
    assert context.learning_insights == []


@pytest.mark.asyncio
async def test_failing_profile_skips_profile_dependent_sources():
    store = FakeContextStore(SkinProfile(skin_type="dry", climate="arid"))
    store.failing = {"get_skin_profile"}

    context = await ContextLoader(store).load_user_context("u")

    assert context.skin_profile is None
    assert "get_seasonal_pattern" not in store.calls


@pytest.mark.asyncio
async def test_no_climate_skips_seasonal_pattern():
    store = FakeContextStore(SkinProfile(skin_type="normal"))
    await ContextLoader(store).load_user_context("u")
    assert "get_seasonal_pattern" not in store.calls
    assert "get_ingredient_effectiveness" in store.calls
