import pytest

from convo_mcp.services.consent_service import get_latest_consent, record_consent
from convo_mcp.services.message_service import append_message, get_recent_messages
from convo_mcp.services.user_service import ensure_user_and_conversation


@pytest.mark.asyncio
async def test_declined_consent_has_no_accepted_at(session):
    resolved = await ensure_user_and_conversation(session, "whatsapp", "573001112233")
    consent = await record_consent(session, resolved.conversation.id, "v1", accepted=False)

    assert consent.id is not None
    assert consent.accepted is False
    assert consent.accepted_at is None
    assert consent.meta == {}


@pytest.mark.asyncio
async def test_accepted_consent_is_timestamped(session):
    resolved = await ensure_user_and_conversation(session, "whatsapp", "573001112233")
    consent = await record_consent(
        session, resolved.conversation.id, "v2", accepted=True, meta={"source": "button"}
    )

    assert consent.accepted_at is not None
    assert consent.meta == {"source": "button"}


@pytest.mark.asyncio
async def test_latest_consent_wins(session):
    resolved = await ensure_user_and_conversation(session, "whatsapp", "573001112233")
    conversation_id = resolved.conversation.id

    assert await get_latest_consent(session, conversation_id) is None

    await record_consent(session, conversation_id, "v1", accepted=False)
    await record_consent(session, conversation_id, "v1", accepted=True)

    latest = await get_latest_consent(session, conversation_id)
    assert latest.accepted is True


@pytest.mark.asyncio
async def test_recent_messages_are_the_newest_in_chronological_order(session):
    resolved = await ensure_user_and_conversation(session, "whatsapp", "573001112233")
    conversation_id = resolved.conversation.id

    for n in range(1, 6):
        await append_message(session, conversation_id, "user", f"m{n}")

    messages = await get_recent_messages(session, conversation_id, limit=2)
    assert [m.content for m in messages] == ["m4", "m5"]

    everything = await get_recent_messages(session, conversation_id, limit=50)
    assert [m.content for m in everything] == ["m1", "m2", "m3", "m4", "m5"]


@pytest.mark.asyncio
async def test_messages_are_scoped_to_their_conversation(session):
    first = await ensure_user_and_conversation(session, "whatsapp", "573001112233")
    second = await ensure_user_and_conversation(session, "web", "sess-9")

    await append_message(session, first.conversation.id, "user", "hola")
    await append_message(session, second.conversation.id, "assistant", "hi", meta={"lang": "en"})

    messages = await get_recent_messages(session, second.conversation.id)
    assert [(m.role, m.content, m.meta) for m in messages] == [("assistant", "hi", {"lang": "en"})]
