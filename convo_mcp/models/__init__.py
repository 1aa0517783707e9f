from convo_mcp.models.user import User
from convo_mcp.models.conversation import Conversation, ConversationState
from convo_mcp.models.consent import Consent
from convo_mcp.models.message import Message

__all__ = ["User", "Conversation", "ConversationState", "Consent", "Message"]
