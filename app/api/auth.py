"""Back-office authentication for the newsletter admin SPA."""

from datetime import datetime, timedelta, timezone
import logging

from fastapi import APIRouter, Response
from sqlalchemy import select

from app.api.deps import (
    DbSession,
    CurrentUser,
    SESSION_COOKIE,
    verify_password,
    create_access_token,
)
from app.config import settings
from app.exceptions import UnauthorizedError
from app.models.user import User
from app.schemas.auth import Token, LoginRequest, AuthMeResponse, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=Token)
async def login(response: Response, login_data: LoginRequest, db: DbSession):
    """
    Exchange email and password for a JWT.

    The token is returned in the body and also set as an httpOnly ``session``
    cookie for the SPA.
    """
    result = await db.execute(select(User).where(User.email == login_data.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.info("Failed back-office login attempt")
        raise UnauthorizedError("Incorrect email or password")

    if not user.is_active:
        logger.info(f"Login refused for disabled user {user.id}")
        raise UnauthorizedError("User account is disabled")

    user.last_login_at = datetime.now(timezone.utc)
    await db.commit()

    expires = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(data={"sub": str(user.id), "email": user.email}, expires_delta=expires)

    response.set_cookie(
        key=SESSION_COOKIE,
        value=access_token,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=int(expires.total_seconds()),
    )

    logger.info(f"User {user.id} logged in")
    return Token(access_token=access_token, token=access_token)


@router.post("/logout")
async def logout(response: Response):
    response.delete_cookie(key=SESSION_COOKIE)
    return {"message": "Successfully logged out"}


@router.get("/me", response_model=AuthMeResponse)
async def get_current_user_info(current_user: CurrentUser):
    return AuthMeResponse(user=UserResponse.from_db_user(current_user))
