"""
convo_mcp/services/document_service.py

Purpose: Policy and document-confirmation workflow

- Marks the data policy as sent
- Saves the user's document number and asks for confirmation
- Records the confirmation answer
- Records the outcome of an SSO validation
"""

from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from convo_mcp.core.logging import get_logger
from convo_mcp.db.base import utcnow
from convo_mcp.flow.states import ConversationStep
from convo_mcp.services.session_service import advance_step
from convo_mcp.services.user_service import ResolvedConversation, update_doc_number

logger = get_logger(__name__)


async def mark_policy_sent(
    session: AsyncSession,
    resolved: ResolvedConversation,
    policy_version: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Notes that the data policy was sent to the user.

    Returns:
        Updated state
    """
    extra = {"policySentAt": utcnow().isoformat()}
    if policy_version:
        extra["policyVersion"] = policy_version
    return await advance_step(session, resolved.conversation.id, ConversationStep.POLICY_REQUESTED, extra)


async def save_doc_number(
    session: AsyncSession,
    resolved: ResolvedConversation,
    doc_number: str,
) -> Dict[str, Any]:
    """
    Stores the document number on the user and waits for confirmation.

    Returns:
        Updated state
    """
    await update_doc_number(session, resolved.user, doc_number)
    return await advance_step(
        session,
        resolved.conversation.id,
        ConversationStep.AWAITING_DOC_CONFIRMATION,
        {"docNumber": doc_number, "docConfirmed": False},
    )


async def confirm_doc_number(
    session: AsyncSession,
    resolved: ResolvedConversation,
    confirmed: bool,
) -> Dict[str, Any]:
    """
    Records the user's answer to "is this your document number?".

    A rejection sends the workflow back to asking for the number; the
    number stored on the user is kept until a new one is saved.

    Returns:
        Updated state
    """
    conversation_id = resolved.conversation.id
    if confirmed:
        return await advance_step(
            session,
            conversation_id,
            ConversationStep.DOCUMENT_CONFIRMED,
            {"docConfirmed": True, "docConfirmedAt": utcnow().isoformat()},
        )

    logger.info("Document number rejected by user", extra={"conversation_id": conversation_id})
    return await advance_step(
        session,
        conversation_id,
        ConversationStep.AWAITING_DOC_NUMBER,
        {"docConfirmed": False, "docNumber": None},
    )


async def record_sso_result(
    session: AsyncSession,
    resolved: ResolvedConversation,
    result: Dict[str, Any],
) -> Optional[Dict[str, Any]]:
    """
    Stores the outcome of a successful SSO lookup in the state.
    Degraded results (those carrying an error) leave the state untouched.

    Returns:
        Updated state, or None when nothing was written
    """
    if result.get("error"):
        return None
    return await advance_step(
        session,
        resolved.conversation.id,
        ConversationStep.SSO_VALIDATED,
        {"ssoExists": bool(result.get("exists")), "ssoValidatedAt": utcnow().isoformat()},
    )
