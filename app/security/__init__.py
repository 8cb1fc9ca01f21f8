# Security module
from app.security.rbac import Role, Permission, get_user_role, has_permission, require_admin

__all__ = [
    "Role",
    "Permission",
    "get_user_role",
    "has_permission",
    "require_admin",
]
