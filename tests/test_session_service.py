import pytest

from convo_mcp.services.session_service import get_state, merge_state, set_state
from convo_mcp.services.user_service import ensure_user_and_conversation


def test_merge_overwrites_and_keeps_keys():
    assert merge_state({"a": 1, "b": 2}, {"b": 3, "c": 4}) == {"a": 1, "b": 3, "c": 4}


def test_replace_drops_old_keys():
    assert merge_state({"a": 1}, {"b": 2}, replace=True) == {"b": 2}


@pytest.mark.parametrize("current", [None, [1, 2], "text", 7])
def test_missing_or_non_object_state_is_replaced(current):
    assert merge_state(current, {"b": 2}) == {"b": 2}
    assert merge_state(current, {"b": 2}, replace=True) == {"b": 2}


def test_merge_is_one_level_deep():
    current = {"profile": {"name": "Ana", "city": "Bogota"}, "step": "NEW"}
    merged = merge_state(current, {"profile": {"name": "Ana Maria"}})
    assert merged == {"profile": {"name": "Ana Maria"}, "step": "NEW"}


def test_merge_does_not_mutate_inputs():
    current = {"a": 1}
    data = {"b": 2}
    merge_state(current, data)
    assert current == {"a": 1}
    assert data == {"b": 2}


@pytest.mark.asyncio
async def test_set_state_merges_by_default(database):
    async with database.session() as session:
        resolved = await ensure_user_and_conversation(session, "whatsapp", "573001112233")
        conversation_id = resolved.conversation.id
        await set_state(session, conversation_id, {"a": 1, "b": 2})

    async with database.session() as session:
        await set_state(session, conversation_id, {"b": 3, "c": 4})

    async with database.session() as session:
        assert await get_state(session, conversation_id) == {"a": 1, "b": 3, "c": 4}


@pytest.mark.asyncio
async def test_set_state_replace(database):
    async with database.session() as session:
        resolved = await ensure_user_and_conversation(session, "whatsapp", "573001112233")
        conversation_id = resolved.conversation.id
        await set_state(session, conversation_id, {"a": 1})
        await set_state(session, conversation_id, {"b": 2}, replace=True)

    async with database.session() as session:
        assert await get_state(session, conversation_id) == {"b": 2}


@pytest.mark.asyncio
@pytest.mark.parametrize("replace", [False, True])
async def test_first_write_yields_exactly_the_data(database, replace):
    async with database.session() as session:
        resolved = await ensure_user_and_conversation(session, "web", f"fresh-{replace}")
        await set_state(session, resolved.conversation.id, {"x": {"y": 1}}, replace=replace)
        assert await get_state(session, resolved.conversation.id) == {"x": {"y": 1}}


@pytest.mark.asyncio
async def test_get_state_without_row_is_empty(session):
    assert await get_state(session, 999) == {}
