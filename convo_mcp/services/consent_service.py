"""
convo_mcp/services/consent_service.py

Purpose: Data-policy consent records

- Appends accept/decline events (never updated or deleted)
- Fetches the latest answer for a conversation
"""

from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from convo_mcp.core.logging import get_logger
from convo_mcp.db.base import utcnow
from convo_mcp.models import Consent

logger = get_logger(__name__)


async def record_consent(
    session: AsyncSession,
    conversation_id: int,
    policy_version: str,
    accepted: bool,
    meta: Optional[Dict[str, Any]] = None,
) -> Consent:
    """
    Stores a consent answer.

    Args:
        conversation_id: Conversation the answer belongs to
        policy_version: Version of the policy shown to the user
        accepted: Whether the user accepted
        meta: Free-form extra data

    Returns:
        The new Consent row (accepted_at is None unless accepted)
    """
    now = utcnow()
    consent = Consent(
        conversation_id=conversation_id,
        policy_version=policy_version,
        accepted=accepted,
        accepted_at=now if accepted else None,
        meta=meta or {},
        created_at=now,
    )
    session.add(consent)
    await session.flush()

    logger.info(
        f"Consent recorded: policy={policy_version} accepted={accepted}",
        extra={"conversation_id": conversation_id}
    )
    return consent


async def get_latest_consent(session: AsyncSession, conversation_id: int) -> Optional[Consent]:
    """
    Returns the most recent consent for a conversation, if any.
    """
    return await session.scalar(
        select(Consent)
        .where(Consent.conversation_id == conversation_id)
        .order_by(Consent.created_at.desc(), Consent.id.desc())
        .limit(1)
    )
