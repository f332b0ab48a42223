"""Named conversation owned by one user. Messages belong to a conversation."""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from chatbot.database import Base

DEFAULT_CONVERSATION_TITLE = "New Chat"


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False, default=DEFAULT_CONVERSATION_TITLE)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Messages ordered by timestamp for correct ordering
    messages = relationship(
        "Message",
        back_populates="conversation",
        order_by="Message.timestamp",
        lazy="select",
    )
