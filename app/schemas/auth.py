"""Back-office login and identity schemas."""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional, Literal


RoleType = Literal["admin", "staff"]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class Token(BaseModel):
    """``token`` duplicates ``access_token`` for the admin SPA."""

    access_token: str
    token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    """Claims read back from a verified JWT."""

    user_id: int
    email: Optional[str] = None


class UserResponse(BaseModel):
    id: int
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool
    role: RoleType = "staff"
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_db_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            is_active=bool(user.is_active),
            role="admin" if user.can_manage_newsletter else "staff",
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class AuthMeResponse(BaseModel):
    user: UserResponse
