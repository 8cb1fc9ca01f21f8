"""
Back-office roles for the newsletter.

Staff accounts (instructors, reception) can log in but cannot manage the
newsletter; admins and superusers can.
"""

from enum import Enum
from typing import Set
import logging

from app.exceptions import ForbiddenError
from app.models.user import User

logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERUSER = "superuser"


class Permission(str, Enum):
    MANAGE_NEWSLETTER = "manage_newsletter"


ROLE_PERMISSIONS: dict[Role, Set[Permission]] = {
    Role.USER: set(),
    Role.ADMIN: {Permission.MANAGE_NEWSLETTER},
    Role.SUPERUSER: {Permission.MANAGE_NEWSLETTER},
}


def get_user_role(user: User) -> Role:
    if user.is_superuser:
        return Role.SUPERUSER
    if user.is_admin:
        return Role.ADMIN
    return Role.USER


def has_permission(user: User, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS[get_user_role(user)]


def require_admin(current_user: User) -> None:
    """Raise ForbiddenError unless the user may manage contacts and campaigns."""
    if has_permission(current_user, Permission.MANAGE_NEWSLETTER):
        return
    role = get_user_role(current_user)
    logger.warning(
        f"Newsletter access denied for user {current_user.id}",
        extra={"user_id": current_user.id, "role": role.value},
    )
    raise ForbiddenError("Admin access required")
