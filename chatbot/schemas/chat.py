from datetime import datetime
from pydantic import BaseModel, Field


# ---- Conversations ----

class ConversationCreate(BaseModel):
    title: str | None = Field(None, max_length=200, description="Optional; defaults to 'New Chat' when omitted or blank")


class ConversationUpdate(BaseModel):
    title: str | None = Field(None, max_length=200)


class ConversationOut(BaseModel):
    id: str
    user_id: str
    title: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ---- Messages ----

class MessageCreate(BaseModel):
    message: str = Field(..., max_length=8000)


class MessageOut(BaseModel):
    id: str
    conversation_id: str
    sender: str  # "user" | "ai"
    content: str
    timestamp: datetime

    class Config:
        from_attributes = True


class TranscriptResponse(BaseModel):
    messages: list[MessageOut]
