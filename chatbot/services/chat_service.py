"""
Chat orchestration: Conversation + Message persistence, context window, Gemini call.
- Save user message before calling the model; save AI message afterwards, always.
- Context window: try Redis; on miss (or when its newest id lags the DB) load from DB, warm Redis.
- Ownership: checked before any mutation; conversation.user_id must be the caller.
- Provider failures never surface as request errors; they become the AI's persisted reply.
"""
import asyncio
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatbot.config import get_settings
from chatbot.exceptions import ForbiddenError, InternalError, NotFoundError, ValidationError
from chatbot.models.conversation import DEFAULT_CONVERSATION_TITLE, Conversation
from chatbot.models.message import Message, MessageSender
from chatbot.repositories.chat_repository import ChatRepository
from chatbot.services.ai_service import GeminiChatClient
from chatbot.services.redis_chat_cache import RedisChatCache

logger = logging.getLogger(__name__)

NOT_CONFIGURED_REPLY = "AI service is not configured. Please ensure the API key is set."
EMPTY_REPLY = "I received an empty response from the AI. Please try again."
CONNECTION_ERROR_REPLY = "I encountered an issue connecting to the AI. Please try again. Details: {error}"
API_KEY_ERROR_REPLY = "Issue with AI service. Please check your API key."

# Lowercased substrings that identify a credential problem in a provider error
API_KEY_ERROR_MARKERS = (
    "error fetching from link",
    "invalid api key",
    "api key not valid",
    "api_key_invalid",
)

# Stored sender -> provider role
PROVIDER_ROLES = {
    MessageSender.USER.value: "user",
    MessageSender.AI.value: "model",
}


def build_context_window(messages: list, limit: int) -> list:
    """Trailing slice of at most `limit` messages, order preserved."""
    if limit <= 0:
        return []
    return list(messages[-limit:])


def to_provider_history(messages: list[dict]) -> list[dict]:
    return [{"role": PROVIDER_ROLES[m["sender"]], "text": m["content"]} for m in messages]


def fallback_for_error(error: Exception) -> str:
    detail = str(error)
    if any(marker in detail.lower() for marker in API_KEY_ERROR_MARKERS):
        return API_KEY_ERROR_REPLY
    return CONNECTION_ERROR_REPLY.format(error=detail)


def _as_cache_entry(message: Message) -> dict:
    return {"id": message.id, "sender": message.sender, "content": message.content}


def _require_conversation_id(conversation_id: str | None) -> str:
    if not conversation_id or not conversation_id.strip():
        raise ValidationError("Conversation ID is required.")
    try:
        uuid.UUID(conversation_id)
    except ValueError:
        raise ValidationError("Invalid Conversation ID format.")
    return conversation_id


class ChatService:
    """Orchestrates conversations and turns: DB as source of truth, Redis as context cache (Cache-Aside)."""

    def __init__(
        self,
        ai_client: GeminiChatClient,
        redis_cache: RedisChatCache | None = None,
        repository: ChatRepository | None = None,
        context_limit: int | None = None,
    ):
        self._ai = ai_client
        self._cache = redis_cache
        self._repo = repository or ChatRepository()
        self._limit = context_limit if context_limit is not None else get_settings().chat_context_max_messages

    # ---------- Conversations ----------

    async def list_conversations(self, db: Session, user_id: str) -> list[Conversation]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: self._repo.list_conversations(db, user_id))

    async def create_conversation(self, db: Session, user_id: str, title: str | None = None) -> Conversation:
        title = (title or "").strip() or DEFAULT_CONVERSATION_TITLE
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: self._repo.create_conversation(db, user_id, title))

    async def rename_conversation(
        self, db: Session, conversation_id: str, user_id: str, title: str | None
    ) -> Conversation:
        """
        Rename an owned conversation. A missing conversation and one owned by
        someone else both raise NotFoundError so existence is not leaked.
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title cannot be empty.")
        _require_conversation_id(conversation_id)
        loop = asyncio.get_event_loop()
        conv = await loop.run_in_executor(
            None,
            lambda: self._repo.update_conversation_title(db, conversation_id, user_id, title),
        )
        if conv is None:
            raise NotFoundError("Conversation not found or unauthorized.")
        return conv

    # ---------- Messages ----------

    async def get_owned_conversation(self, db: Session, conversation_id: str, user_id: str) -> Conversation:
        _require_conversation_id(conversation_id)
        loop = asyncio.get_event_loop()
        conv = await loop.run_in_executor(None, lambda: self._repo.get_conversation(db, conversation_id))
        if conv is None:
            raise NotFoundError("Conversation not found")
        if conv.user_id != user_id:
            raise ForbiddenError("Access denied. Not your conversation.")
        return conv

    async def list_messages(self, db: Session, conversation_id: str, user_id: str) -> list[Message]:
        await self.get_owned_conversation(db, conversation_id, user_id)
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: self._repo.get_messages(db, conversation_id))

    async def submit_turn(self, db: Session, conversation_id: str, user_id: str, text: str) -> list[Message]:
        """
        One send-message turn: persist the user turn, build the context window,
        ask Gemini, persist the AI turn (fallback text on any provider problem)
        and return the full transcript oldest-first.
        """
        await self.get_owned_conversation(db, conversation_id, user_id)
        if not text or not text.strip():
            raise ValidationError("Message cannot be empty.")
        loop = asyncio.get_event_loop()

        try:
            user_message = await loop.run_in_executor(
                None,
                lambda: self._repo.save_message(db, conversation_id, MessageSender.USER.value, text),
            )
            history, cache_ok = await self._get_context_window(db, conversation_id, exclude_id=user_message.id)
            if cache_ok:
                cache_ok = await self._cache.append_message(conversation_id, _as_cache_entry(user_message))

            reply = await self._generate_reply(to_provider_history(history), text)

            ai_message = await loop.run_in_executor(
                None,
                lambda: self._repo.save_message(db, conversation_id, MessageSender.AI.value, reply),
            )
            if cache_ok:
                # skipped after a failed warm or append so the cached tail stays behind the DB
                await self._cache.append_message(conversation_id, _as_cache_entry(ai_message))

            return await loop.run_in_executor(None, lambda: self._repo.get_messages(db, conversation_id))
        except SQLAlchemyError as e:
            logger.exception("Persisting turn failed for conversation %s", conversation_id)
            db.rollback()
            raise InternalError("Server Error processing message") from e

    async def _get_context_window(
        self, db: Session, conversation_id: str, *, exclude_id: str
    ) -> tuple[list[dict], bool]:
        """
        Cache-Aside: try Redis first; on miss load from DB, warm Redis, return.
        A cached window is used only if its newest entry is the newest prior message in the DB.
        Returns (window, cache_ok); cache_ok is False when there is no cache or the warm failed,
        and then this turn must not append to the cache.
        Must run before the new user turn is appended to the cache.
        """
        loop = asyncio.get_event_loop()
        if self._cache:
            cached = await self._cache.get_last_messages(conversation_id)
            if cached is not None:
                latest_id = await loop.run_in_executor(
                    None,
                    lambda: self._repo.get_latest_message_id(db, conversation_id, exclude_id=exclude_id),
                )
                if cached[-1].get("id") == latest_id:
                    return build_context_window(cached, self._limit), True
                logger.info("Stale context cache for conversation %s, reloading from DB", conversation_id)
        rows = await loop.run_in_executor(
            None,
            lambda: self._repo.get_last_messages(db, conversation_id, self._limit, exclude_id=exclude_id),
        )
        window = build_context_window([_as_cache_entry(r) for r in rows], self._limit)
        if self._cache is None:
            return window, False
        return window, await self._cache.warm(conversation_id, window)

    async def _generate_reply(self, history: list[dict], prompt: str) -> str:
        if not self._ai.is_configured:
            logger.warning("AI reply skipped: Gemini client is not configured")
            return NOT_CONFIGURED_REPLY
        try:
            reply = await self._ai.generate_reply(history, prompt)
        except Exception as e:
            logger.exception("Error during Gemini API call")
            return fallback_for_error(e)
        if not reply or not reply.strip():
            logger.warning("Gemini returned an empty reply")
            return EMPTY_REPLY
        return reply
