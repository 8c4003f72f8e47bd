"""Authentication dependencies for route protection."""

from typing import Optional
from fastapi import Depends, Request, HTTPException, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import User
from ..auth.security import decode_access_token


def get_bearer_token(request: Request) -> Optional[str]:
    """Token from the ``Authorization: Bearer`` header, else the ``token`` cookie."""
    auth_header = request.headers.get("Authorization", "")
    parts = auth_header.split(" ")
    if len(parts) == 2 and parts[0] == "Bearer" and parts[1]:
        return parts[1]

    return request.cookies.get("token") or None


def get_current_user_optional(
    request: Request,
    db: Session = Depends(get_db)
) -> Optional[User]:
    """
    Resolve the caller's account from its JWT.
    Returns None when no valid token is presented.
    """
    token = get_bearer_token(request)
    if not token:
        return None

    settings = request.app.state.settings
    payload = decode_access_token(token, settings.jwt_secret, settings.jwt_algorithm)
    if not payload:
        return None

    user_id = payload.get("user_id")
    if user_id is None:
        return None

    try:
        user_id = int(user_id)
    except (TypeError, ValueError):
        return None

    return db.query(User).filter(User.id == user_id).first()


def require_user(user: Optional[User] = Depends(get_current_user_optional)) -> User:
    """
    Dependency to require an authenticated operator.
    Use in route dependencies: Depends(require_user)
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
