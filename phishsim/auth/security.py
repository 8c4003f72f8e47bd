"""Password hashing and JWT session tokens for PhishSim operators."""

from datetime import datetime, timedelta
from typing import Optional
import bcrypt
from jose import JWTError, jwt

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


class PasswordTooLong(ValueError):
    """Password exceeds MAX_PASSWORD_BYTES once UTF-8 encoded."""


def hash_password(password: str) -> str:
    """bcrypt hash of ``password`` as text; raises PasswordTooLong past 72 bytes."""
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise PasswordTooLong(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("ascii")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    encoded = plain_password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, hashed_password.encode("ascii"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(
    data: dict,
    secret: str,
    algorithm: str = "HS256",
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()

    if expires_delta is None:
        expires_delta = timedelta(days=7)

    to_encode.update({"exp": datetime.utcnow() + expires_delta})
    return jwt.encode(to_encode, secret, algorithm=algorithm)


def decode_access_token(token: str, secret: str, algorithm: str = "HS256") -> Optional[dict]:
    """Decode and verify a JWT access token."""
    try:
        return jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError:
        return None
