"""
convo_mcp/api/tools.py

Purpose: MCP tool surface

- Registers every tool on the FastMCP server with its argument schema
- Builds the typed request (validation happens before any I/O)
- Delegates to the dispatch table
"""

from typing import Annotated, Any, Dict, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from convo_mcp.core.config import settings
from convo_mcp.flow.dispatcher import dispatch_tool
from convo_mcp.schemas.tools import (
    DEFAULT_CHANNEL,
    MAX_SUMMARY_MESSAGES,
    AppendMessageRequest,
    ConfirmDocNumberRequest,
    ConversationSummaryRequest,
    GetStateRequest,
    InitConversationRequest,
    MarkPolicySentRequest,
    RecordConsentRequest,
    SaveDocNumberRequest,
    SetStateRequest,
    ValidateDocumentRequest,
    ValidateUserInSSORequest,
)

Channel = Annotated[str, Field(description="Messaging channel: whatsapp, web or anything else (stored as 'other')")]
ExternalId = Annotated[str, Field(min_length=1, description="Channel-specific user id, e.g. the WhatsApp number")]
JSONObject = Dict[str, Any]


mcp = FastMCP(
    name=settings.MCP_SERVER_NAME,
    instructions=(
        "Conversation backend for a multi-channel assistant. Call initConversation first for a new "
        "contact, keep workflow progress with getState/setState, log every turn with appendMessage."
    ),
    host=settings.HOST,
    port=settings.PORT,
    streamable_http_path="/mcp",
    sse_path="/mcp/sse",
    message_path="/mcp/messages/",
)


@mcp.tool(name="ping", description="Returns pong")
async def ping() -> str:
    return await dispatch_tool("ping")


@mcp.tool(
    name="initConversation",
    description="Initializes the user and conversation (idempotent) and ensures the state row exists",
)
async def init_conversation(
    externalId: ExternalId,
    channel: Channel = DEFAULT_CHANNEL,
    phone: Optional[str] = None,
    docNumber: Optional[str] = None,
) -> JSONObject:
    request = InitConversationRequest(
        channel=channel, externalId=externalId, phone=phone, docNumber=docNumber
    )
    return await dispatch_tool("initConversation", request)


@mcp.tool(name="recordConsent", description="Records acceptance or rejection of the data-processing policy")
async def record_consent(
    externalId: ExternalId,
    policyVersion: Annotated[str, Field(min_length=1)],
    accepted: bool,
    channel: Channel = DEFAULT_CHANNEL,
    meta: Optional[JSONObject] = None,
) -> JSONObject:
    request = RecordConsentRequest(
        channel=channel, externalId=externalId, policyVersion=policyVersion, accepted=accepted, meta=meta
    )
    return await dispatch_tool("recordConsent", request)


@mcp.tool(name="getState", description="Returns the conversation's JSON state")
async def get_state(externalId: ExternalId, channel: Channel = DEFAULT_CHANNEL) -> JSONObject:
    request = GetStateRequest(channel=channel, externalId=externalId)
    return await dispatch_tool("getState", request)


@mcp.tool(
    name="setState",
    description="Updates the JSON state: replace=true replaces it, otherwise keys are shallow-merged",
)
async def set_state(
    externalId: ExternalId,
    data: JSONObject,
    channel: Channel = DEFAULT_CHANNEL,
    replace: bool = False,
) -> JSONObject:
    request = SetStateRequest(channel=channel, externalId=externalId, data=data, replace=replace)
    return await dispatch_tool("setState", request)


@mcp.tool(name="appendMessage", description="Stores a message in the conversation")
async def append_message(
    externalId: ExternalId,
    role: Annotated[str, Field(min_length=1, description="user, assistant, system, ...")],
    content: Annotated[str, Field(min_length=1)],
    channel: Channel = DEFAULT_CHANNEL,
    meta: Optional[JSONObject] = None,
) -> JSONObject:
    request = AppendMessageRequest(
        channel=channel, externalId=externalId, role=role, content=content, meta=meta
    )
    return await dispatch_tool("appendMessage", request)


@mcp.tool(
    name="getConversationSummary",
    description="Returns the latest consent, the state and the last N messages",
)
async def get_conversation_summary(
    externalId: ExternalId,
    channel: Channel = DEFAULT_CHANNEL,
    lastMessages: Annotated[int, Field(ge=1, le=MAX_SUMMARY_MESSAGES)] = 10,
) -> JSONObject:
    request = ConversationSummaryRequest(channel=channel, externalId=externalId, lastMessages=lastMessages)
    return await dispatch_tool("getConversationSummary", request)


@mcp.tool(name="markPolicySent", description="Marks the data policy as sent (step policy_requested)")
async def mark_policy_sent(
    externalId: ExternalId,
    channel: Channel = DEFAULT_CHANNEL,
    policyVersion: Optional[str] = None,
) -> JSONObject:
    request = MarkPolicySentRequest(channel=channel, externalId=externalId, policyVersion=policyVersion)
    return await dispatch_tool("markPolicySent", request)


@mcp.tool(
    name="saveDocNumber",
    description="Saves the user's document number and waits for confirmation (step awaiting_doc_confirmation)",
)
async def save_doc_number(
    externalId: ExternalId,
    docNumber: Annotated[str, Field(min_length=1)],
    channel: Channel = DEFAULT_CHANNEL,
) -> JSONObject:
    request = SaveDocNumberRequest(channel=channel, externalId=externalId, docNumber=docNumber)
    return await dispatch_tool("saveDocNumber", request)


@mcp.tool(
    name="confirmDocNumber",
    description="Records whether the user confirmed the document number (step document_confirmed)",
)
async def confirm_doc_number(
    externalId: ExternalId,
    confirmed: bool,
    channel: Channel = DEFAULT_CHANNEL,
) -> JSONObject:
    request = ConfirmDocNumberRequest(channel=channel, externalId=externalId, confirmed=confirmed)
    return await dispatch_tool("confirmDocNumber", request)


@mcp.tool(
    name="validateUserInSSO",
    description=(
        "Checks the user's document number (given, or the one stored on the user) against the SSO. "
        "Never fails: errors come back as {exists: false, error}"
    ),
)
async def validate_user_in_sso(
    externalId: ExternalId,
    channel: Channel = DEFAULT_CHANNEL,
    docNumber: Optional[str] = None,
) -> JSONObject:
    request = ValidateUserInSSORequest(channel=channel, externalId=externalId, docNumber=docNumber)
    return await dispatch_tool("validateUserInSSO", request)


@mcp.tool(
    name="validateDocumentInSSO",
    description="Checks a document number against the SSO without touching any conversation",
)
async def validate_document_in_sso(docNumber: Annotated[str, Field(min_length=1)]) -> JSONObject:
    request = ValidateDocumentRequest(docNumber=docNumber)
    return await dispatch_tool("validateDocumentInSSO", request)
