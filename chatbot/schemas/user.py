import re
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = re.compile(r".+@.+\..+")


class RegisterRequest(BaseModel):
    username: str = Field(..., max_length=50)
    email: str = Field(..., max_length=255)
    password: str

    @field_validator("username")
    @classmethod
    def username_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Username is required")
        return v

    @field_validator("email")
    @classmethod
    def email_shape(cls, v: str) -> str:
        v = v.strip().lower()
        if not EMAIL_PATTERN.fullmatch(v):
            raise ValueError("Please enter a valid email address")
        return v

    @field_validator("password")
    @classmethod
    def password_length(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


class LoginRequest(BaseModel):
    identifier: str  # email or username
    password: str


class TokenPayload(BaseModel):
    sub: str  # user id
    exp: int
    type: str = "access"


class TokenResponse(BaseModel):
    token: str
    user_id: str = Field(..., alias="userId")
    token_type: str = "bearer"

    class Config:
        populate_by_name = True


class UserResponse(BaseModel):
    id: str
    username: str
    email: str
    created_at: datetime

    class Config:
        from_attributes = True
