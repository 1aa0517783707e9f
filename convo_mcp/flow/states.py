"""
convo_mcp/flow/states.py

Purpose: Channels and conversation workflow steps

- Closed set of messaging channels and the total channel normalizer
- Advisory workflow steps stored under ConversationState.data["step"]
- Metadata for each step (progress tracking for the orchestrator)
"""

from enum import Enum
from typing import Dict, Optional
from dataclasses import dataclass


class Channel(str, Enum):
    """
    Messaging surfaces a user can reach the assistant through.
    """

    WHATSAPP = "whatsapp"
    WEB = "web"
    OTHER = "other"


def parse_channel(value: Optional[str]) -> Channel:
    """
    Maps a free-text channel identifier to a Channel.

    Matching is case-insensitive and ignores surrounding whitespace.
    Anything unrecognized (including empty input) becomes OTHER; this
    never raises.

    Args:
        value: Channel text as sent by the caller

    Returns:
        Normalized Channel
    """
    if isinstance(value, Channel):
        return value
    if not isinstance(value, str):
        return Channel.OTHER

    normalized = value.strip().lower()
    if normalized == Channel.WHATSAPP.value:
        return Channel.WHATSAPP
    if normalized == Channel.WEB.value:
        return Channel.WEB
    return Channel.OTHER


class ConversationStep(str, Enum):
    """
    Steps of the onboarding workflow, kept in the conversation state.
    The orchestrator drives the order; tools never reject out-of-order calls.
    """

    NEW = "NEW"
    POLICY_REQUESTED = "policy_requested"
    AWAITING_DOC_NUMBER = "awaiting_doc_number"
    AWAITING_DOC_CONFIRMATION = "awaiting_doc_confirmation"
    DOCUMENT_CONFIRMED = "document_confirmed"
    SSO_VALIDATED = "sso_validated"


@dataclass
class StepMetadata:
    """
    Position of a workflow step, used for progress reporting.
    """
    name: ConversationStep
    step_number: int
    total_steps: int = 5


STEP_METADATA: Dict[ConversationStep, StepMetadata] = {
    step: StepMetadata(name=step, step_number=number)
    for number, step in enumerate(ConversationStep)
}


def get_progress_percentage(step: ConversationStep) -> int:
    """
    Calculates progress percentage for a given step.
    """
    metadata = STEP_METADATA[step]
    return int((metadata.step_number / metadata.total_steps) * 100)
