"""Authentication endpoints"""

from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from app.api.deps import get_storage
from app.config import settings
from app.db import User
from app.schemas import UserCreate, UserLogin, UserResponse, LoginResponse, MessageResponse
from app.services import (
    Storage, authenticate_user, register_user, create_access_token, decode_access_token
)
from app.structured_logging import set_request_context

router = APIRouter(tags=["Authentication"])
security = HTTPBearer(auto_error=False)  # Don't auto-reject - we also check the session cookie


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.access_token_expire_minutes * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    storage: Storage = Depends(get_storage),
) -> User:
    """Dependency to get the current authenticated user.
    Checks Bearer token first, then falls back to the session cookie."""
    user_id = None

    # 1. Try Bearer token
    if credentials and credentials.credentials:
        user_id = decode_access_token(credentials.credentials)

    # 2. Fall back to session cookie
    if user_id is None:
        cookie_token = request.cookies.get(settings.session_cookie_name)
        if cookie_token:
            user_id = decode_access_token(cookie_token)

    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await storage.get_user(user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    set_request_context(user_id=user.id)
    return user


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    response: Response,
    storage: Storage = Depends(get_storage),
):
    """Register a new user and start a session"""
    user = await register_user(
        storage,
        username=user_data.username,
        password=user_data.password,
        email=user_data.email,
    )
    _set_session_cookie(response, create_access_token(user.id))
    return UserResponse.model_validate(user)


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: UserLogin,
    response: Response,
    storage: Storage = Depends(get_storage),
):
    """Login and get an access token. Also sets the session cookie."""
    user = await authenticate_user(storage, credentials.username.strip(), credentials.password)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = create_access_token(user.id)
    _set_session_cookie(response, token)
    return LoginResponse(access_token=token, user=UserResponse.model_validate(user))


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    """Logout - clear the session cookie"""
    response.delete_cookie(key=settings.session_cookie_name, path="/")
    return MessageResponse(message="Logged out")


@router.get("/user", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get current user info, including the token balance"""
    return UserResponse.model_validate(current_user)
