"""
RBAC Models
Roles, permissions and the two many-to-many associations between them and users
"""

from sqlalchemy import Column, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from app.models.base import BaseModel, CreatedAtMixin, IdType
from app.core.database import Base


class Role(BaseModel):
    """Named bundle of permissions"""
    __tablename__ = "roles"

    name = Column(String(64), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    permission_links = relationship("RolePermission", back_populates="role", lazy="noload")

    def __repr__(self):
        return f"<Role(name='{self.name}')>"


class Permission(BaseModel):
    """Atomic capability named resource:action"""
    __tablename__ = "permissions"

    name = Column(String(128), nullable=False, unique=True)
    resource = Column(String(64), nullable=False)
    action = Column(String(64), nullable=False)
    description = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_permissions_resource", "resource"),
    )

    def __repr__(self):
        return f"<Permission(name='{self.name}')>"


class RolePermission(Base):
    __tablename__ = "role_permissions"

    role_id = Column(IdType, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)
    permission_id = Column(IdType, ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True)

    role = relationship("Role", back_populates="permission_links", lazy="noload")
    permission = relationship("Permission", lazy="noload")

    __table_args__ = (
        Index("ix_role_permissions_role_id", "role_id"),
    )


class UserRole(Base, CreatedAtMixin):
    __tablename__ = "user_roles"

    user_id = Column(IdType, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role_id = Column(IdType, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True)

    user = relationship("User", back_populates="role_links", lazy="noload")
    role = relationship("Role", lazy="noload")

    __table_args__ = (
        Index("ix_user_roles_user_id", "user_id"),
    )
