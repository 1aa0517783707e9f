"""
convo_mcp/flow/dispatcher.py

Purpose: Tool dispatch table

- One handler per MCP tool: validated request in, JSON-ready dict out
- Resolves the caller's user/conversation before tool-specific work
- Each call runs in a single store transaction
- SSO tools degrade to {exists: false, error} instead of raising
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from convo_mcp.core.logging import get_logger, LogContext
from convo_mcp.db.database import Database, get_database
from convo_mcp.flow.states import ConversationStep, get_progress_percentage
from convo_mcp.schemas.response import serialize_consent, serialize_message, serialize_user
from convo_mcp.schemas.tools import (
    AppendMessageRequest,
    ConfirmDocNumberRequest,
    ConversationSummaryRequest,
    GetStateRequest,
    InitConversationRequest,
    MarkPolicySentRequest,
    RecordConsentRequest,
    SaveDocNumberRequest,
    SetStateRequest,
    ToolRequest,
    ValidateDocumentRequest,
    ValidateUserInSSORequest,
)
from convo_mcp.services import consent_service, document_service, message_service, session_service
from convo_mcp.services.sso_service import SSOClient, get_sso_client, validate_document
from convo_mcp.services.user_service import ensure_user_and_conversation

logger = get_logger(__name__)


def _db(database: Optional[Database]) -> Database:
    return database or get_database()


async def handle_ping(request: Optional[ToolRequest] = None, database: Optional[Database] = None) -> str:
    return "pong"


async def handle_init_conversation(request: InitConversationRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(
            session,
            request.channel,
            request.external_id,
            phone=request.phone,
            doc_number=request.doc_number,
        )
        return {"userId": resolved.user.id, "conversationId": resolved.conversation.id}


async def handle_record_consent(request: RecordConsentRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        consent = await consent_service.record_consent(
            session,
            resolved.conversation.id,
            request.policy_version,
            request.accepted,
            meta=request.meta,
        )
        return {"consentId": consent.id}


async def handle_get_state(request: GetStateRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        data = await session_service.get_state(session, resolved.conversation.id)
        return {"data": data}


async def handle_set_state(request: SetStateRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        await session_service.set_state(
            session,
            resolved.conversation.id,
            request.data,
            replace=request.replace,
        )
        return {"ok": True}


async def handle_append_message(request: AppendMessageRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        message = await message_service.append_message(
            session,
            resolved.conversation.id,
            request.role,
            request.content,
            meta=request.meta,
        )
        return {"messageId": message.id}


async def handle_conversation_summary(request: ConversationSummaryRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    """
    Latest consent, current state and the last N messages (oldest first).
    """
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        conversation_id = resolved.conversation.id

        # One session means one connection: these run one after another
        state = await session_service.get_state(session, conversation_id)
        consent = await consent_service.get_latest_consent(session, conversation_id)
        messages = await message_service.get_recent_messages(session, conversation_id, request.last_messages)

        return {
            "user": serialize_user(resolved.user),
            "conversationId": conversation_id,
            "consent": serialize_consent(consent),
            "state": state,
            "messages": [serialize_message(message) for message in messages],
        }


def _step_result(state: Dict[str, Any], **extra) -> Dict[str, Any]:
    step = ConversationStep(state["step"])
    return {"ok": True, "step": step.value, "progress": get_progress_percentage(step), **extra}


async def handle_mark_policy_sent(request: MarkPolicySentRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        state = await document_service.mark_policy_sent(session, resolved, request.policy_version)
        return _step_result(state)


async def handle_save_doc_number(request: SaveDocNumberRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        state = await document_service.save_doc_number(session, resolved, request.doc_number)
        return _step_result(state, docNumber=request.doc_number)


async def handle_confirm_doc_number(request: ConfirmDocNumberRequest, database: Optional[Database] = None) -> Dict[str, Any]:
    async with _db(database).session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        state = await document_service.confirm_doc_number(session, resolved, request.confirmed)
        return _step_result(state, confirmed=request.confirmed)


async def handle_validate_user_in_sso(
    request: ValidateUserInSSORequest,
    database: Optional[Database] = None,
    sso_client: Optional[SSOClient] = None,
) -> Dict[str, Any]:
    """
    Checks the caller's document number (explicit, or the one stored on the
    user) against the SSO. SSO failures come back as a result, persistence
    failures propagate.
    """
    database = _db(database)
    sso_client = sso_client or get_sso_client()

    async with database.session() as session:
        resolved = await ensure_user_and_conversation(session, request.channel, request.external_id)
        doc_number = request.doc_number or resolved.user.doc_number

    # The SSO round trip happens outside the transaction
    result = await validate_document(sso_client, doc_number)

    if not result.get("error"):
        async with database.session() as session:
            await document_service.record_sso_result(session, resolved, result)

    return result


async def handle_validate_document_in_sso(
    request: ValidateDocumentRequest,
    database: Optional[Database] = None,
    sso_client: Optional[SSOClient] = None,
) -> Dict[str, Any]:
    return await validate_document(sso_client or get_sso_client(), request.doc_number)


ToolHandler = Callable[..., Awaitable[Any]]

TOOL_HANDLERS: Dict[str, ToolHandler] = {
    "ping": handle_ping,
    "initConversation": handle_init_conversation,
    "recordConsent": handle_record_consent,
    "getState": handle_get_state,
    "setState": handle_set_state,
    "appendMessage": handle_append_message,
    "getConversationSummary": handle_conversation_summary,
    "markPolicySent": handle_mark_policy_sent,
    "saveDocNumber": handle_save_doc_number,
    "confirmDocNumber": handle_confirm_doc_number,
    "validateUserInSSO": handle_validate_user_in_sso,
    "validateDocumentInSSO": handle_validate_document_in_sso,
}


async def dispatch_tool(name: str, request: Optional[ToolRequest] = None, **kwargs) -> Any:
    """
    Routes a validated request to its handler.

    Args:
        name: Tool name
        request: Validated request model
        **kwargs: Passed through to the handler (database, sso_client)

    Returns:
        JSON-ready result

    Raises:
        KeyError: Unknown tool name
    """
    handler = TOOL_HANDLERS[name]
    external_id = getattr(request, "external_id", None)
    channel = getattr(request, "channel", None)

    with LogContext(tool=name, external_id=external_id, channel=channel):
        logger.info(f"🔧 Tool call: {name}")
        try:
            return await handler(request, **kwargs)
        except Exception as e:
            logger.error(f"❌ Tool {name} failed: {e}", exc_info=True)
            raise
