"""
Role assignment schemas
"""

from typing import List

from pydantic import Field

from app.core.rbac import RoleName
from app.schemas.base import BaseSchema


class RoleAssignmentRequest(BaseSchema):
    role: RoleName = Field(..., description="Role to grant")


class UserRolesResponse(BaseSchema):
    user_id: int
    roles: List[str]


class RoleAssignmentResponse(UserRolesResponse):
    changed: bool = Field(..., description="Whether an assignment row was created or removed")
