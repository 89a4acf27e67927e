"""Authentication service - JWT token handling and password hashing"""

from datetime import datetime, timedelta
from typing import Optional
import uuid

from jose import JWTError, jwt
import bcrypt

from app.config import settings
from app.db.models import User
from app.services.errors import ValidationFailed
from app.services.storage import Storage


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using bcrypt directly."""
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        hashed_password.encode("utf-8"),
    )


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt directly."""
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(),
    ).decode("utf-8")


def create_access_token(user_id: int) -> str:
    """Create a JWT access token"""
    expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "iat": datetime.utcnow(),
        "jti": str(uuid.uuid4()),  # Unique token ID
    }
    return jwt.encode(
        to_encode,
        settings.jwt_secret,
        algorithm=settings.jwt_algorithm
    )


def decode_access_token(token: str) -> Optional[int]:
    """Decode a JWT token and return the user ID"""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return None
    sub = payload.get("sub")
    if sub is None:
        return None
    try:
        return int(sub)
    except (TypeError, ValueError):
        return None


async def authenticate_user(
    storage: Storage,
    username: str,
    password: str
) -> Optional[User]:
    """Authenticate a user by username and password"""
    user = await storage.get_user_by_username(username)
    if not user or not user.hashed_password:
        # OAuth-only accounts have no password
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


async def register_user(
    storage: Storage,
    username: str,
    password: str,
    email: Optional[str] = None,
) -> User:
    """Create a user with the starting token allotment"""
    if await storage.get_user_by_username(username):
        raise ValidationFailed("Username already exists")
    return await storage.create_user(
        username=username,
        hashed_password=get_password_hash(password),
        starting_balance=settings.starting_token_balance,
        email=email,
    )
