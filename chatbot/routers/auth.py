from fastapi import APIRouter, Depends, status
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from chatbot.database import get_db
from chatbot.exceptions import UnauthorizedError, ValidationError
from chatbot.models.user import User
from chatbot.auth import create_access_token, get_current_user, hash_password, verify_password
from chatbot.schemas.user import LoginRequest, RegisterRequest, TokenResponse, UserResponse

router = APIRouter(prefix="/api/auth", tags=["auth"])

USER_EXISTS_MESSAGE = "User already exists"
INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: Session = Depends(get_db)):
    """Register with username, email and password. Email is stored lowercase."""
    existing = db.query(User).filter(
        or_(User.email == body.email, User.username == body.username)
    ).first()
    if existing:
        raise ValidationError(USER_EXISTS_MESSAGE)

    user = User(
        username=body.username,
        email=body.email,
        password=hash_password(body.password),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Concurrent registration won the unique constraint
        db.rollback()
        raise ValidationError(USER_EXISTS_MESSAGE)
    db.refresh(user)

    return TokenResponse(token=create_access_token(user.id), user_id=user.id)


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Login with email or username and password."""
    identifier = body.identifier.strip()
    user = db.query(User).filter(
        or_(func.lower(User.email) == identifier.lower(), User.username == identifier)
    ).first()
    if not user or not verify_password(body.password, user.password):
        raise UnauthorizedError(INVALID_CREDENTIALS_MESSAGE)
    return TokenResponse(token=create_access_token(user.id), user_id=user.id)


@router.get("/me", response_model=UserResponse)
def get_me(user: User = Depends(get_current_user)):
    return user
