"""Authentication routes for operator registration and login."""

import logging
from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import User, UserRole
from ..schemas import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from ..deps.auth import require_user
from .security import PasswordTooLong, hash_password, verify_password, create_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])


def _issue_token(request: Request, user: User) -> str:
    settings = request.app.state.settings
    return create_access_token(
        data={"user_id": str(user.id), "username": user.username, "role": user.role.value},
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_delta=timedelta(minutes=settings.jwt_expire_minutes),
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(data: RegisterRequest, db: Session = Depends(get_db)):
    """Create an operator account."""
    existing = db.query(User).filter(User.username == data.username).first()
    if existing:
        raise HTTPException(status_code=409, detail="Username already exists")

    try:
        password_hash = hash_password(data.password)
    except PasswordTooLong as e:
        raise HTTPException(status_code=400, detail=str(e))

    user = User(
        username=data.username,
        password_hash=password_hash,
        role=UserRole(data.role),
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    logger.info(f"Registered user {user.username} ({user.role.value})")
    return AuthResponse(user=UserResponse.model_validate(user))


@router.post("/login", response_model=AuthResponse)
async def login(data: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Verify credentials and return a session token (also set as a cookie)."""
    user = db.query(User).filter(User.username == data.username).first()
    if not user or not verify_password(data.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = _issue_token(request, user)
    body = AuthResponse(token=token, user=UserResponse.model_validate(user))

    response = JSONResponse(content=body.model_dump(mode="json"))
    response.set_cookie(
        key="token",
        value=token,
        httponly=True,
        samesite="strict",
        secure=request.app.state.settings.cookie_secure,
        max_age=request.app.state.settings.jwt_expire_minutes * 60,
    )
    return response


@router.post("/logout")
async def logout():
    """Clear the session cookie."""
    response = JSONResponse(content={"success": True})
    response.delete_cookie("token")
    return response


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(require_user)):
    """Current operator."""
    return user
