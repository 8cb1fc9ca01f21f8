"""
FastAPI dependencies: database session, back-office auth, email provider.

SECURITY NOTES:
- JWT payloads and raw tokens are never logged
- Bearer token first; the httpOnly ``session`` cookie set at login is the
  fallback used by the admin SPA
"""

from typing import Annotated
from fastapi import Depends, Cookie
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from jose import JWTError, jwt
import bcrypt
from datetime import datetime, timedelta, timezone
import logging

from app.database import get_db
from app.config import settings
from app.exceptions import ForbiddenError, UnauthorizedError
from app.models.user import User
from app.schemas.auth import TokenData
from app.security.rbac import require_admin
from app.services.sendgrid_service import SendGridService

logger = logging.getLogger(__name__)

SESSION_COOKIE = "session"

bearer_scheme = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database: treat as a wrong password
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Sign a back-office JWT. ``sub`` carries the user id as a string."""
    claims = dict(data)
    claims["exp"] = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> TokenData:
    """Verify signature and expiry; UnauthorizedError on anything unexpected."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return TokenData(user_id=int(payload["sub"]), email=payload.get("email"))
    except JWTError:
        raise UnauthorizedError("Could not validate credentials")
    except (KeyError, TypeError, ValueError):
        raise UnauthorizedError("Invalid token format")


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_db)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
    session_token: Annotated[str | None, Cookie(alias=SESSION_COOKIE)] = None,
) -> User:
    if credentials:
        token, auth_method = credentials.credentials, "bearer"
    elif session_token:
        token, auth_method = session_token, "cookie"
    else:
        raise UnauthorizedError()

    try:
        token_data = decode_access_token(token)
    except UnauthorizedError:
        logger.warning("Rejected back-office token", extra={"auth_method": auth_method})
        raise

    user = await db.get(User, token_data.user_id)
    if user is None:
        raise UnauthorizedError("Could not validate credentials")

    logger.debug("User authenticated", extra={"user_id": user.id, "auth_method": auth_method})
    return user


async def get_current_active_user(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    if not current_user.is_active:
        raise ForbiddenError("User account is disabled")
    return current_user


async def get_current_admin(current_user: Annotated[User, Depends(get_current_active_user)]) -> User:
    require_admin(current_user)
    return current_user


def get_email_service() -> SendGridService:
    """Provider used by subscribe and campaign delivery. Tests override this."""
    return SendGridService()


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_active_user)]
AdminUser = Annotated[User, Depends(get_current_admin)]
EmailService = Annotated[SendGridService, Depends(get_email_service)]
