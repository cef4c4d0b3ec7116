"""User account API endpoints."""

import asyncio
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, File, Request, Response, UploadFile, status

from account_service.api.dependencies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    get_current_user_id,
    get_session_manager,
)
from account_service.config import get_settings
from account_service.models.auth import (
    LoginResponse,
    MessageResponse,
    TokenPair,
    TokenResponse,
)
from account_service.models.user import PublicUser
from account_service.services.session_manager import SessionManager

router = APIRouter(prefix="/api/v1/users", tags=["Users"])


def _field(payload: Optional[dict[str, Any]], *names: str) -> Optional[Any]:
    """Return the first non-blank value among snake_case/camelCase aliases.

    Form clients send every input, so an empty ``username`` must not hide a
    filled-in ``email``.
    """
    if not payload:
        return None
    for name in names:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        return value
    return None


def _set_token_cookies(response: Response, tokens: TokenPair, manager: SessionManager) -> None:
    secure = get_settings().cookie_secure
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        tokens.access_token,
        max_age=manager.tokens.access_token_expires_in,
        httponly=True,
        secure=secure,
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=int(manager.tokens.refresh_ttl.total_seconds()),
        httponly=True,
        secure=secure,
    )


def _clear_token_cookies(response: Response) -> None:
    secure = get_settings().cookie_secure
    response.delete_cookie(ACCESS_TOKEN_COOKIE, httponly=True, secure=secure)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, httponly=True, secure=secure)


def _stage_upload(upload: UploadFile) -> str:
    """Write an uploaded file to a temporary path and return the path."""
    suffix = Path(upload.filename or "").suffix
    with tempfile.NamedTemporaryFile(delete=False, suffix=suffix) as tmp:
        shutil.copyfileobj(upload.file, tmp)
        return tmp.name


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    payload: dict[str, Any] = Body(...),
    manager: SessionManager = Depends(get_session_manager),
) -> PublicUser:
    """Register a new account.

    Returns:
        The created account without credential fields

    Raises:
        ValidationError 400, ConflictError 409
    """
    return await manager.register(
        username=_field(payload, "username"),
        email=_field(payload, "email"),
        password=_field(payload, "password"),
        full_name=_field(payload, "full_name", "fullName"),
    )


@router.post("/login")
async def login(
    response: Response,
    payload: dict[str, Any] = Body(...),
    manager: SessionManager = Depends(get_session_manager),
) -> LoginResponse:
    """Login with a username or email and a password.

    Tokens are returned in the body and set as httpOnly cookies.

    Raises:
        ValidationError 400, AuthError 401
    """
    result = await manager.login(
        identifier=_field(payload, "identifier", "username", "email"),
        password=_field(payload, "password"),
    )
    _set_token_cookies(response, result.tokens, manager)
    return LoginResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        expires_in=manager.tokens.access_token_expires_in,
        user=result.user,
    )


@router.post("/logout")
async def logout(
    response: Response,
    user_id: UUID = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Logout: invalidate the refresh token and clear token cookies."""
    await manager.logout(user_id)
    _clear_token_cookies(response)
    return MessageResponse(message="User logged out successfully")


@router.post("/generateToken")
async def refresh_tokens(
    request: Request,
    response: Response,
    payload: Optional[dict[str, Any]] = Body(default=None),
    manager: SessionManager = Depends(get_session_manager),
) -> TokenResponse:
    """Exchange a refresh token for a new token pair.

    The refresh token is read from the ``refreshToken`` cookie or the body.
    The presented token is rotated away and can never be used again.

    Raises:
        AuthError 401: If the token is missing, invalid, expired or reused
    """
    presented = request.cookies.get(REFRESH_TOKEN_COOKIE) or _field(
        payload, "refresh_token", "refreshToken"
    )
    tokens = await manager.refresh(presented)
    _set_token_cookies(response, tokens, manager)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=manager.tokens.access_token_expires_in,
    )


@router.post("/change-password")
async def change_password(
    payload: dict[str, Any] = Body(...),
    user_id: UUID = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> MessageResponse:
    """Change the current user's password."""
    await manager.change_password(
        user_id,
        old_password=_field(payload, "old_password", "oldPassword"),
        new_password=_field(payload, "new_password", "newPassword"),
    )
    return MessageResponse(message="password changed successfully")


@router.get("/get-user")
async def get_user(
    user_id: UUID = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> PublicUser:
    """Return the current user's account."""
    return await manager.get_user(user_id)


@router.post("/update-user-details")
async def update_user_details(
    payload: dict[str, Any] = Body(...),
    user_id: UUID = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> PublicUser:
    """Update the current user's full name and/or email."""
    return await manager.update_details(
        user_id,
        full_name=_field(payload, "full_name", "fullName"),
        email=_field(payload, "email"),
    )


@router.post("/update-avatar")
async def update_avatar(
    avatar: UploadFile = File(...),
    user_id: UUID = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> PublicUser:
    """Replace the current user's avatar image."""
    staged = await asyncio.to_thread(_stage_upload, avatar)
    try:
        return await manager.update_avatar(user_id, staged)
    finally:
        await asyncio.to_thread(os.unlink, staged)


@router.post("/update-cover-image")
async def update_cover_image(
    coverImage: UploadFile = File(...),
    user_id: UUID = Depends(get_current_user_id),
    manager: SessionManager = Depends(get_session_manager),
) -> PublicUser:
    """Replace the current user's cover image."""
    staged = await asyncio.to_thread(_stage_upload, coverImage)
    try:
        return await manager.update_cover(user_id, staged)
    finally:
        await asyncio.to_thread(os.unlink, staged)
