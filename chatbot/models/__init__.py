from chatbot.models.user import User
from chatbot.models.conversation import Conversation, DEFAULT_CONVERSATION_TITLE
from chatbot.models.message import Message, MessageSender

__all__ = ["User", "Conversation", "DEFAULT_CONVERSATION_TITLE", "Message", "MessageSender"]
