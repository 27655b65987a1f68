"""Tests for the SQL-backed stores, with a mocked SQLAlchemy session."""
import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from memory.context_store import UserContextStore
from memory.conversation_store import ConversationStore
from memory.schemas import Message, SpecialistInsight


def _session(first=None, rows=None, rowcount=1):
    session = MagicMock()
    result = session.execute.return_value
    result.mappings.return_value.first.return_value = first
    result.mappings.return_value.all.return_value = rows or []
    result.rowcount = rowcount
    return session


def _message_row(seq, role="user", content="hi"):
    return {
        "id": f"m{seq}",
        "seq": seq,
        "conversation_id": "c1",
        "role": role,
        "content": content,
        "image_urls": None,
        "specialist_type": None,
        "status": "complete",
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }


def test_append_message_commits_insert_and_touch():
    session = _session(first=_message_row(7, content="hello"))
    store = ConversationStore(lambda: session)

    stored = store.append_message(Message("c1", "user", "hello"))

    assert stored.seq == 7
    assert stored.id == "m7"
    assert stored.image_urls == []
    assert stored.created_at == "2026-01-01T00:00:00+00:00"
    assert session.execute.call_count == 2
    params = session.execute.call_args_list[0].args[1]
    assert params["status"] == "complete"
    session.commit.assert_called_once()
    session.close.assert_called_once()


def test_append_message_rolls_back_on_error():
    session = _session()
    session.execute.side_effect = RuntimeError("connection lost")
    store = ConversationStore(lambda: session)

    with pytest.raises(RuntimeError):
        store.append_message(Message("c1", "assistant", "partial", status="partial"))

    session.rollback.assert_called_once()
    session.commit.assert_not_called()
    session.close.assert_called_once()


def test_load_messages_returns_oldest_first():
    session = _session(rows=[_message_row(3), _message_row(2), _message_row(1)])
    store = ConversationStore(lambda: session)

    messages = store.load_messages("c1", limit=3)

    assert [m.seq for m in messages] == [1, 2, 3]
    assert session.execute.call_args.args[1] == {"conversation_id": "c1", "limit": 3}


@pytest.mark.parametrize("rowcount, expected", [(1, True), (0, False)])
def test_set_title_if_missing(rowcount, expected):
    session = _session(rowcount=rowcount)
    store = ConversationStore(lambda: session)

    assert store.set_title_if_missing("c1", "Glass Skin Basics") is expected
    sql = str(session.execute.call_args.args[0])
    assert "title IS NULL" in sql


def test_get_conversation_missing():
    store = ConversationStore(lambda: _session(first=None))
    assert store.get_conversation("c1") is None


def test_create_conversation_pins_specialist():
    row = {"id": "c9", "user_id": "u1", "title": None, "specialist_type": "trend_scout",
           "created_at": None, "updated_at": None}
    session = _session(first=row)

    conv = ConversationStore(lambda: session).create_conversation("u1", "trend_scout")

    assert conv.id == "c9"
    assert conv.specialist_type == "trend_scout"
    assert session.execute.call_args.args[1] == {"user_id": "u1", "specialist_type": "trend_scout"}


def test_save_specialist_insight_serializes_data():
    session = _session()
    insight = SpecialistInsight("c1", "trend_scout", {"trends_discussed": ["PDRN"]})

    ConversationStore(lambda: session).save_specialist_insight(insight)

    params = session.execute.call_args.args[1]
    assert json.loads(params["data"]) == {"trends_discussed": ["PDRN"]}
    assert params["insight_type"] == "conversation_extraction"
    session.commit.assert_called_once()


def test_context_store_profile_nulls_become_empty_lists():
    row = {"skin_type": "dry", "skin_concerns": None, "allergies": None,
           "fitzpatrick_scale": 3, "climate": "arid", "age_range": None,
           "budget_range": None, "experience_level": None, "onboarding_completed": True}
    store = UserContextStore(lambda: _session(rows=[row]))

    profile = store.get_skin_profile("u1")

    assert profile.skin_type == "dry"
    assert profile.allergies == []
    assert profile.onboarding_completed is True


def test_context_store_without_profile():
    assert UserContextStore(lambda: _session(rows=[])).get_skin_profile("u1") is None
