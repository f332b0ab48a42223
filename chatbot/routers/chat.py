"""
Chat endpoints:
- GET/POST /api/chat/conversations/{user_id} — list / create the caller's conversations
- PUT /api/chat/conversations/{conversation_id} — rename an owned conversation
- GET /api/chat/messages/{conversation_id} — transcript of an owned conversation
- POST /api/chat/messages/{conversation_id} — send a message, get the AI reply and the full transcript
"""
import logging
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from chatbot.auth import get_current_user
from chatbot.database import get_db
from chatbot.exceptions import ForbiddenError
from chatbot.models.user import User
from chatbot.schemas.chat import (
    ConversationCreate,
    ConversationOut,
    ConversationUpdate,
    MessageCreate,
    MessageOut,
    TranscriptResponse,
)
from chatbot.services.ai_service import GeminiChatClient, build_ai_client
from chatbot.services.chat_service import ChatService
from chatbot.services.redis_chat_cache import RedisChatCache
from chatbot.repositories.chat_repository import ChatRepository
from chatbot.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

USER_MISMATCH_MESSAGE = "Access denied. User ID mismatch."


# ---------- Dependencies: Gemini client (app-wide) + Redis (optional) + ChatService ----------


def get_ai_client(request: Request) -> GeminiChatClient:
    """The client built at startup; built on first use when the lifespan did not run."""
    client = getattr(request.app.state, "ai_client", None)
    if client is None:
        client = build_ai_client(get_settings())
        request.app.state.ai_client = client
    return client


def _get_redis_chat_cache_dep(request: Request) -> RedisChatCache | None:
    """Redis context cache over the client opened at startup, or None if Redis is disabled/down."""
    client = getattr(request.app.state, "redis", None)
    return RedisChatCache(client) if client is not None else None


def get_chat_service(
    ai_client: GeminiChatClient = Depends(get_ai_client),
    redis_cache=Depends(_get_redis_chat_cache_dep),
) -> ChatService:
    """ChatService with optional Redis cache (Cache-Aside). DB is source of truth."""
    return ChatService(ai_client, redis_cache=redis_cache, repository=ChatRepository())


def _require_same_user(user: User, user_id: str) -> None:
    if user.id != user_id:
        raise ForbiddenError(USER_MISMATCH_MESSAGE)


# ---------- Conversations ----------


@router.get("/conversations/{user_id}", response_model=list[ConversationOut])
async def list_conversations(
    user_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    """Conversations of the caller, newest first."""
    _require_same_user(user, user_id)
    return await chat_service.list_conversations(db, user_id)


@router.post("/conversations/{user_id}", response_model=ConversationOut, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    user_id: str,
    body: ConversationCreate | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    _require_same_user(user, user_id)
    title = body.title if body else None
    return await chat_service.create_conversation(db, user_id, title)


@router.put("/conversations/{conversation_id}", response_model=ConversationOut)
async def rename_conversation(
    conversation_id: str,
    body: ConversationUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    """Rename. Missing and foreign conversations both answer 404."""
    return await chat_service.rename_conversation(db, conversation_id, user.id, body.title)


# ---------- Messages ----------


@router.get("/messages/{conversation_id}", response_model=list[MessageOut])
async def list_messages(
    conversation_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    return await chat_service.list_messages(db, conversation_id, user.id)


@router.post("/messages/{conversation_id}", response_model=TranscriptResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: str,
    body: MessageCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    chat_service: ChatService = Depends(get_chat_service),
):
    """
    Send a message and get the AI reply. Always 201 once the conversation is
    found and owned: AI failures come back as the AI message's text.
    """
    messages = await chat_service.submit_turn(db, conversation_id, user.id, body.message)
    return TranscriptResponse(messages=[MessageOut.model_validate(m) for m in messages])
