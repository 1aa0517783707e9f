import pytest

from convo_mcp.flow.states import (
    Channel,
    ConversationStep,
    get_progress_percentage,
    parse_channel,
)


@pytest.mark.parametrize("value", ["WhatsApp", "whatsapp", "WHATSAPP", "  whatsapp "])
def test_whatsapp_spellings_normalize_to_same_channel(value):
    assert parse_channel(value) is Channel.WHATSAPP


@pytest.mark.parametrize("value", ["web", "Web", "WEB"])
def test_web_spellings(value):
    assert parse_channel(value) is Channel.WEB


@pytest.mark.parametrize("value", ["telegram", "", "whats app", "w3b", "💬", None, 42])
def test_unknown_channels_become_other(value):
    assert parse_channel(value) is Channel.OTHER


def test_channel_passthrough():
    assert parse_channel(Channel.WEB) is Channel.WEB


def test_step_progress():
    assert get_progress_percentage(ConversationStep.NEW) == 0
    assert get_progress_percentage(ConversationStep.SSO_VALIDATED) == 100
    assert get_progress_percentage(ConversationStep.AWAITING_DOC_CONFIRMATION) == 60


def test_progress_follows_step_order():
    progress = [get_progress_percentage(step) for step in ConversationStep]
    assert progress == sorted(progress)
    assert len(set(progress)) == len(progress)
