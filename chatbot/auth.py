from datetime import datetime, timedelta
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from chatbot.config import get_settings
from chatbot.database import get_db
from chatbot.exceptions import UnauthorizedError
from chatbot.models.user import User
from chatbot.schemas.user import TokenPayload

settings = get_settings()
security = HTTPBearer(auto_error=False)

NO_TOKEN_MESSAGE = "No token, authorization denied"
INVALID_TOKEN_MESSAGE = "Token is not valid"

# Use Argon2 for password hashing
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
)

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(plain: str, hashed: str | None) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)

def create_access_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)

def decode_token(token: str) -> TokenPayload | None:
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
    except JWTError:
        return None
    if not payload.get("sub") or "exp" not in payload:
        return None
    return TokenPayload(
        sub=payload["sub"],
        exp=payload["exp"],
        type=payload.get("type", "access"),
    )

def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    # HTTPBearer yields None for a missing header, a non-Bearer scheme or an empty token
    if not credentials:
        raise UnauthorizedError(NO_TOKEN_MESSAGE)

    payload = decode_token(credentials.credentials)

    if not payload:
        raise UnauthorizedError(INVALID_TOKEN_MESSAGE)

    user = db.query(User).filter(User.id == payload.sub).first()

    if not user:
        raise UnauthorizedError("User not found")

    return user
