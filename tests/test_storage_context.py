import random
from pathlib import Path

import pytest

from courier.agent.context import CONVERSATION_WINDOW, build_state, character_variables, compose_context
from courier.config import AgentConfig
from courier.models import Content, ConversationState, MemoryRecord, zero_embedding
from courier.storage.db import Database, get_db
from courier.utils.ids import scoped_id, string_to_uuid

AGENT = AgentConfig(
    name="Courier",
    bio=["Carries messages."],
    topics=["trains", "weather"],
    adjectives=["wry"],
    post_examples=["Late again."],
)


def _record(idx: int, user_id: str, room: str = "room", text: str | None = None) -> MemoryRecord:
    return MemoryRecord(
        id=f"m{idx}",
        agent_id=AGENT.agent_id,
        user_id=user_id,
        room_id=room,
        content=Content(text=text or f"message {idx}"),
        created_at=1000 + idx,
    )


def test_ids_are_deterministic_and_scoped() -> None:
    assert string_to_uuid("abc") == string_to_uuid("abc")
    assert scoped_id("42", "agent-a") != scoped_id("42", "agent-b")


def test_get_db_reuses_instance_per_workspace(tmp_path: Path) -> None:
    assert get_db(tmp_path) is get_db(tmp_path)


@pytest.mark.asyncio
async def test_memories_round_trip_and_order(tmp_path: Path) -> None:
    db = Database(tmp_path)
    for i in range(5):
        assert await db.create_memory(_record(i, "user"))
    assert not await db.create_memory(_record(0, "user"))

    latest = await db.get_memories("room", count=2)
    assert [m.id for m in latest] == ["m3", "m4"]
    assert latest[0].embedding == zero_embedding()
    assert await db.get_memories("elsewhere") == []
    db.close()


@pytest.mark.asyncio
async def test_get_memories_filters_by_user(tmp_path: Path) -> None:
    db = Database(tmp_path)
    await db.create_memory(_record(1, "user"))
    await db.create_memory(_record(2, AGENT.agent_id))
    only_agent = await db.get_memories("room", user_id=AGENT.agent_id)
    assert [m.id for m in only_agent] == ["m2"]


@pytest.mark.asyncio
async def test_cache_upserts(tmp_path: Path) -> None:
    db = Database(tmp_path)
    assert await db.cache_get("k") is None
    await db.cache_set("k", {"timestamp": 1})
    await db.cache_set("k", {"timestamp": 2})
    assert await db.cache_get("k") == {"timestamp": 2}


@pytest.mark.asyncio
async def test_ensure_connection_is_idempotent(tmp_path: Path) -> None:
    db = Database(tmp_path)
    await db.ensure_connection("u1", "room", "alice", "telegram")
    await db.ensure_connection("u1", "room", "alice", "telegram")
    assert await db.get_participants("room") == [{"user_id": "u1", "user_name": "alice", "source": "telegram"}]


def test_compose_context_fills_known_and_blanks_unknown() -> None:
    state = ConversationState(room_id="r", variables={"agentName": "Courier", "items": ["a", "b"]})
    assert compose_context(state, "{{agentName}}|{{ items }}|{{missing}}") == "Courier|a\nb|"


def test_character_variables_pick_from_config() -> None:
    variables = character_variables(AGENT, random.Random(3))
    assert variables["agentName"] == "Courier"
    assert variables["topic"] in AGENT.topics
    assert variables["adjective"] == "wry"
    assert "Late again." in variables["characterPostExamples"]


@pytest.mark.asyncio
async def test_build_state_formats_recent_messages(tmp_path: Path) -> None:
    db = Database(tmp_path)
    await db.ensure_connection("u1", "room", "alice", "telegram")
    for i in range(8):
        user = AGENT.agent_id if i % 2 else "u1"
        await db.create_memory(_record(i, user))

    state = await build_state(db, AGENT, "room", sender_name="alice", extra={"feedUserName": "courier"})

    lines = state.variables["recentMessages"].split("\n")
    assert lines[0] == "alice: message 0"
    assert lines[1] == "Courier: message 1"
    assert len(state.variables["formattedConversation"].split("\n")) == CONVERSATION_WINDOW
    assert len(state.turns) == CONVERSATION_WINDOW
    assert state.turns[-1].role == "agent"
    assert state.variables["senderName"] == "alice"
    assert state.variables["feedUserName"] == "courier"
    assert len(state.agent_replies(AGENT.agent_id)) == 4
