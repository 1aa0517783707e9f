"""
convo_mcp/services/user_service.py

Purpose: Identity resolution

- Idempotently resolves (channel, external_id) to a user, their latest
  conversation and that conversation's state row
- Partial updates of phone / document number (absent values keep what is stored)
- User lookups for the document workflow
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from convo_mcp.core.logging import get_logger, LogContext
from convo_mcp.db.base import utcnow
from convo_mcp.db.upsert import dialect_insert
from convo_mcp.flow.states import Channel, parse_channel
from convo_mcp.models import Conversation, ConversationState, User

logger = get_logger(__name__)


@dataclass
class ResolvedConversation:
    user: User
    conversation: Conversation


async def upsert_user(
    session: AsyncSession,
    channel: Channel,
    external_id: str,
    phone: Optional[str] = None,
    doc_number: Optional[str] = None,
) -> User:
    """
    Inserts the user or, on (channel, external_id) conflict, overwrites
    phone/doc_number only where a new value was given.

    On PostgreSQL the conflicting update takes the row lock for the rest of
    the transaction, so concurrent resolutions of the same identity queue
    up behind each other.
    """
    now = utcnow()
    stmt = dialect_insert(session, User).values(
        channel=channel,
        external_id=external_id,
        phone=phone,
        doc_number=doc_number,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[User.channel, User.external_id],
        set_={
            "phone": func.coalesce(stmt.excluded.phone, User.phone),
            "doc_number": func.coalesce(stmt.excluded.doc_number, User.doc_number),
            "updated_at": now,
        },
    )
    result = await session.scalars(
        stmt.returning(User),
        execution_options={"populate_existing": True},
    )
    return result.one()


async def get_latest_conversation(session: AsyncSession, user_id: int) -> Optional[Conversation]:
    """
    Returns the user's most recently created conversation, if any.
    """
    return await session.scalar(
        select(Conversation)
        .where(Conversation.user_id == user_id)
        .order_by(Conversation.created_at.desc(), Conversation.id.desc())
        .limit(1)
    )


async def ensure_state_row(session: AsyncSession, conversation_id: int):
    """
    Creates an empty state row for the conversation unless one exists.
    Never resets existing state.
    """
    stmt = dialect_insert(session, ConversationState).values(
        conversation_id=conversation_id,
        data={},
        updated_at=utcnow(),
    )
    stmt = stmt.on_conflict_do_nothing(index_elements=[ConversationState.conversation_id])
    await session.execute(stmt)


async def ensure_user_and_conversation(
    session: AsyncSession,
    channel: str,
    external_id: str,
    phone: Optional[str] = None,
    doc_number: Optional[str] = None,
) -> ResolvedConversation:
    """
    Resolves or creates the (user, conversation, state) triple for a caller.

    Repeated calls with the same (channel, external_id) return the same user
    and the same conversation: the latest conversation is reused, a new one
    is only created when the user has none.

    Args:
        session: Open session; all writes join its transaction
        channel: Free-text channel, normalized with parse_channel
        external_id: Channel-specific user identifier
        phone: Phone to store; None keeps the stored value
        doc_number: Document number to store; None keeps the stored value

    Returns:
        ResolvedConversation with the user and conversation

    Raises:
        SQLAlchemyError: Persistence failures propagate unchanged
    """
    normalized = parse_channel(channel)

    with LogContext(channel=normalized.value, external_id=external_id):
        user = await upsert_user(session, normalized, external_id, phone=phone, doc_number=doc_number)

        conversation = await get_latest_conversation(session, user.id)
        if conversation is None:
            conversation = Conversation(user_id=user.id)
            session.add(conversation)
            await session.flush()
            logger.info(f"Created conversation {conversation.id} for user {user.id}")

        await ensure_state_row(session, conversation.id)

        logger.debug(
            f"Resolved user {user.id} / conversation {conversation.id}",
            extra={"conversation_id": conversation.id}
        )
        return ResolvedConversation(user=user, conversation=conversation)


async def get_user(session: AsyncSession, channel: str, external_id: str) -> Optional[User]:
    """
    Looks up a user without creating one.

    Args:
        channel: Free-text channel
        external_id: Channel-specific user identifier

    Returns:
        User or None if not found
    """
    return await session.scalar(
        select(User).where(
            User.channel == parse_channel(channel),
            User.external_id == external_id,
        )
    )


async def update_doc_number(session: AsyncSession, user: User, doc_number: str) -> User:
    """
    Stores a document number on the user.
    """
    user.doc_number = doc_number
    user.updated_at = utcnow()
    await session.flush()
    logger.info("Document number updated")
    return user
