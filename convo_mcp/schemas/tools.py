"""
convo_mcp/schemas/tools.py

Purpose: Typed tool requests

- One request model per tool, validated before any I/O
- camelCase names on the wire, snake_case in Python
- Explicit defaults (channel "whatsapp", lastMessages 10, replace False)
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional


DEFAULT_CHANNEL = "whatsapp"
MAX_SUMMARY_MESSAGES = 50


class ToolRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ConversationRef(ToolRequest):
    """
    Identifies the caller; every conversation-scoped tool carries it.
    """
    channel: str = Field(default=DEFAULT_CHANNEL, description="Messaging channel (whatsapp, web, ...)")
    external_id: str = Field(..., alias="externalId", min_length=1, description="Channel-specific user id")


class InitConversationRequest(ConversationRef):
    phone: Optional[str] = None
    doc_number: Optional[str] = Field(default=None, alias="docNumber")


class RecordConsentRequest(ConversationRef):
    policy_version: str = Field(..., alias="policyVersion", min_length=1)
    accepted: bool
    meta: Optional[Dict[str, Any]] = None


class GetStateRequest(ConversationRef):
    pass


class SetStateRequest(ConversationRef):
    data: Dict[str, Any]
    replace: bool = False


class AppendMessageRequest(ConversationRef):
    role: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    meta: Optional[Dict[str, Any]] = None


class ConversationSummaryRequest(ConversationRef):
    last_messages: int = Field(default=10, alias="lastMessages", ge=1, le=MAX_SUMMARY_MESSAGES)


class MarkPolicySentRequest(ConversationRef):
    policy_version: Optional[str] = Field(default=None, alias="policyVersion")


class SaveDocNumberRequest(ConversationRef):
    doc_number: str = Field(..., alias="docNumber", min_length=1)


class ConfirmDocNumberRequest(ConversationRef):
    confirmed: bool


class ValidateUserInSSORequest(ConversationRef):
    doc_number: Optional[str] = Field(default=None, alias="docNumber")


class ValidateDocumentRequest(ToolRequest):
    doc_number: str = Field(..., alias="docNumber", min_length=1)
