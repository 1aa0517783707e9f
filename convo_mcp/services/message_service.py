"""
convo_mcp/services/message_service.py

Purpose: Conversation message history

- Appends messages (never updated or deleted)
- Returns the last N messages in chronological order
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from convo_mcp.core.logging import get_logger
from convo_mcp.db.base import utcnow
from convo_mcp.models import Message

logger = get_logger(__name__)


async def append_message(
    session: AsyncSession,
    conversation_id: int,
    role: str,
    content: str,
    meta: Optional[Dict[str, Any]] = None,
) -> Message:
    """
    Saves a message in the conversation.

    Returns:
        The new Message row
    """
    message = Message(
        conversation_id=conversation_id,
        role=role,
        content=content,
        meta=meta or {},
        created_at=utcnow(),
    )
    session.add(message)
    await session.flush()

    logger.debug(f"Message {message.id} appended ({role})", extra={"conversation_id": conversation_id})
    return message


async def get_recent_messages(session: AsyncSession, conversation_id: int, limit: int = 10) -> List[Message]:
    """
    Retrieves the newest ``limit`` messages.

    Args:
        conversation_id: Conversation to read
        limit: Maximum number of messages

    Returns:
        Messages, oldest first
    """
    result = await session.scalars(
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
    )
    return list(reversed(result.all()))
