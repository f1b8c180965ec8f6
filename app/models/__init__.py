"""
SQLAlchemy Models Package
Calendar Hub Database Models
"""

from app.models.user import User
from app.models.rbac import Permission, Role, RolePermission, UserRole

__all__ = [
    "User",
    "Role",
    "Permission",
    "RolePermission",
    "UserRole",
]
