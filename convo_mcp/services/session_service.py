"""
convo_mcp/services/session_service.py

Purpose: Conversation state management

- Reads the JSON state of a conversation
- Shallow-merges or replaces state on write
- Step bookkeeping for the document workflow
"""

from collections.abc import Mapping
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from convo_mcp.core.logging import get_logger
from convo_mcp.db.base import utcnow
from convo_mcp.flow.states import ConversationStep
from convo_mcp.models import ConversationState

logger = get_logger(__name__)


def merge_state(current: Any, data: Dict[str, Any], replace: bool = False) -> Dict[str, Any]:
    """
    Computes the next state value.

    Replaces when asked to, when nothing is stored yet, or when the stored
    value is not an object. Otherwise merges one level deep: keys in
    ``data`` win, other stored keys are kept, and nested objects are
    replaced wholesale.

    Args:
        current: Stored state (may be None or a non-object JSON value)
        data: Incoming keys
        replace: Whether to discard the stored state

    Returns:
        New state dict
    """
    if replace or current is None or not isinstance(current, Mapping):
        return dict(data)
    return {**current, **data}


async def _load_state_row(session: AsyncSession, conversation_id: int, for_update: bool = False) -> Optional[ConversationState]:
    stmt = select(ConversationState).where(ConversationState.conversation_id == conversation_id)
    if for_update:
        stmt = stmt.with_for_update()
    return await session.scalar(stmt)


async def get_state(session: AsyncSession, conversation_id: int) -> Dict[str, Any]:
    """
    Retrieves state data for a conversation.

    Returns:
        State dict ({} when no row exists)
    """
    row = await _load_state_row(session, conversation_id)
    if row is None or row.data is None:
        return {}
    return row.data


async def set_state(
    session: AsyncSession,
    conversation_id: int,
    data: Dict[str, Any],
    replace: bool = False,
) -> Dict[str, Any]:
    """
    Saves state data for a conversation.

    Args:
        conversation_id: Conversation to update
        data: Keys to write
        replace: If True, replaces stored state; if False, shallow-merges

    Returns:
        The state as written
    """
    row = await _load_state_row(session, conversation_id, for_update=True)
    current = row.data if row is not None else None
    next_data = merge_state(current, data, replace=replace)

    if row is None:
        row = ConversationState(conversation_id=conversation_id, data=next_data)
        session.add(row)
    else:
        # Assign a fresh dict so the JSON column is flagged dirty
        row.data = next_data
        row.updated_at = utcnow()

    await session.flush()

    logger.debug(
        "State saved",
        extra={"conversation_id": conversation_id, "keys": list(data.keys()), "replace": replace}
    )
    return next_data


async def advance_step(
    session: AsyncSession,
    conversation_id: int,
    step: ConversationStep,
    extra: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Merges a new workflow step (plus any extra keys) into the state.
    Steps are advisory; no transition is ever rejected.
    """
    previous = (await get_state(session, conversation_id)).get("step", ConversationStep.NEW.value)
    state = await set_state(session, conversation_id, {**(extra or {}), "step": step.value})
    logger.info(
        f"Step updated: {previous} -> {step.value}",
        extra={"conversation_id": conversation_id}
    )
    return state
