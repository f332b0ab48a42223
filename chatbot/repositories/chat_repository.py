"""
Chat persistence: Conversation (many per user) + Message. DB as source of truth.
All operations are sync (called through run_in_executor from ChatService).
Ownership scoping is done by the caller except for update_conversation_title,
which filters on (id, owner) so a foreign conversation looks like a missing one.
"""
from datetime import datetime, timedelta

from sqlalchemy import desc, func
from sqlalchemy.orm import Session

from chatbot.models.conversation import Conversation
from chatbot.models.message import Message


def get_conversation(db: Session, conversation_id: str) -> Conversation | None:
    return db.query(Conversation).filter(Conversation.id == conversation_id).first()


def list_conversations(db: Session, user_id: str) -> list[Conversation]:
    """All conversations owned by user_id, newest first."""
    return (
        db.query(Conversation)
        .filter(Conversation.user_id == user_id)
        .order_by(desc(Conversation.created_at))
        .all()
    )


def create_conversation(db: Session, user_id: str, title: str) -> Conversation:
    conv = Conversation(user_id=user_id, title=title)
    db.add(conv)
    db.commit()
    db.refresh(conv)
    return conv


def update_conversation_title(
    db: Session,
    conversation_id: str,
    user_id: str,
    title: str,
) -> Conversation | None:
    """Rename a conversation owned by user_id. Returns None when no such owned conversation exists."""
    conv = (
        db.query(Conversation)
        .filter(Conversation.id == conversation_id, Conversation.user_id == user_id)
        .first()
    )
    if conv is None:
        return None
    conv.title = title
    db.commit()
    db.refresh(conv)
    return conv


def _next_timestamp(db: Session, conversation_id: str) -> datetime:
    """Current time, bumped past the conversation's latest message so ordering stays strict."""
    now = datetime.utcnow()
    latest = (
        db.query(func.max(Message.timestamp))
        .filter(Message.conversation_id == conversation_id)
        .scalar()
    )
    if latest is not None and now <= latest:
        now = latest + timedelta(microseconds=1)
    return now


def save_message(db: Session, conversation_id: str, sender: str, content: str) -> Message:
    """Persist one message and commit."""
    msg = Message(
        conversation_id=conversation_id,
        sender=sender,
        content=content,
        timestamp=_next_timestamp(db, conversation_id),
    )
    db.add(msg)
    db.commit()
    db.refresh(msg)
    return msg


def get_messages(db: Session, conversation_id: str) -> list[Message]:
    """Full transcript, ordered by timestamp ascending."""
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.timestamp)
        .all()
    )


def get_last_messages(
    db: Session,
    conversation_id: str,
    limit: int,
    *,
    exclude_id: str | None = None,
) -> list[Message]:
    """
    Load last `limit` messages of a conversation, ordered oldest-first (for Gemini context).
    exclude_id skips the turn that is about to be sent as the new prompt.
    """
    if limit <= 0:
        return []
    query = db.query(Message).filter(Message.conversation_id == conversation_id)
    if exclude_id is not None:
        query = query.filter(Message.id != exclude_id)
    rows = query.order_by(desc(Message.timestamp)).limit(limit).all()
    return list(reversed(rows))  # oldest-first for Gemini context


def get_latest_message_id(
    db: Session,
    conversation_id: str,
    *,
    exclude_id: str | None = None,
) -> str | None:
    """Id of the newest message of a conversation (None if it has no messages)."""
    query = db.query(Message.id).filter(Message.conversation_id == conversation_id)
    if exclude_id is not None:
        query = query.filter(Message.id != exclude_id)
    row = query.order_by(desc(Message.timestamp)).first()
    return row[0] if row else None


class ChatRepository:
    """Thin wrapper for dependency injection; delegates to module functions."""

    @staticmethod
    def get_conversation(db: Session, conversation_id: str) -> Conversation | None:
        return get_conversation(db, conversation_id)

    @staticmethod
    def list_conversations(db: Session, user_id: str) -> list[Conversation]:
        return list_conversations(db, user_id)

    @staticmethod
    def create_conversation(db: Session, user_id: str, title: str) -> Conversation:
        return create_conversation(db, user_id, title)

    @staticmethod
    def update_conversation_title(
        db: Session, conversation_id: str, user_id: str, title: str
    ) -> Conversation | None:
        return update_conversation_title(db, conversation_id, user_id, title)

    @staticmethod
    def save_message(db: Session, conversation_id: str, sender: str, content: str) -> Message:
        return save_message(db, conversation_id, sender, content)

    @staticmethod
    def get_messages(db: Session, conversation_id: str) -> list[Message]:
        return get_messages(db, conversation_id)

    @staticmethod
    def get_last_messages(
        db: Session, conversation_id: str, limit: int, *, exclude_id: str | None = None
    ) -> list[Message]:
        return get_last_messages(db, conversation_id, limit, exclude_id=exclude_id)

    @staticmethod
    def get_latest_message_id(
        db: Session, conversation_id: str, *, exclude_id: str | None = None
    ) -> str | None:
        return get_latest_message_id(db, conversation_id, exclude_id=exclude_id)
