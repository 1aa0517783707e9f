"""
convo_mcp/schemas/response.py

Purpose: Response shapes

- HTTP error body
- JSON views of stored rows returned by tools
"""

from datetime import datetime
from pydantic import BaseModel
from typing import Optional, Any, Dict

from convo_mcp.models import Consent, Message, User


class ErrorResponse(BaseModel):
    """
    Standard error response structure.
    """
    error: str
    code: str
    details: Optional[Any] = None


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "channel": user.channel.value,
        "externalId": user.external_id,
        "phone": user.phone,
    }


def serialize_consent(consent: Optional[Consent]) -> Optional[Dict[str, Any]]:
    if consent is None:
        return None
    return {
        "policyVersion": consent.policy_version,
        "accepted": consent.accepted,
        "acceptedAt": isoformat(consent.accepted_at),
    }


def serialize_message(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "meta": message.meta or {},
        "createdAt": isoformat(message.created_at),
    }
