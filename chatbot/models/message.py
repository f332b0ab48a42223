"""One turn in a conversation, authored by the user or the AI. Immutable once written."""
import enum
import uuid
from datetime import datetime
from sqlalchemy import CheckConstraint, Column, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from chatbot.database import Base


class MessageSender(str, enum.Enum):
    USER = "user"
    AI = "ai"


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (
        CheckConstraint("sender IN ('user', 'ai')", name="ck_messages_sender"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id = Column(
        String(36),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sender = Column(String(8), nullable=False)  # "user" | "ai"
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    conversation = relationship("Conversation", back_populates="messages")
