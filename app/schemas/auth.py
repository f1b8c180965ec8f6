"""
Authentication Schemas
Pydantic models for authentication requests and responses
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field, field_validator

from app.core.config import settings
from app.schemas.base import BaseSchema, validate_email, validate_non_empty_string


def validate_new_password(v: str) -> str:
    """Password policy for any password being stored"""
    if len(v) < settings.PASSWORD_MIN_LENGTH:
        raise ValueError(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long")
    return v


class LoginRequest(BaseSchema):
    """Login request schema"""
    email: str = Field(..., description="User email address")
    password: str = Field(..., min_length=1, description="User password")

    @field_validator('email')
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)


class RegisterRequest(BaseSchema):
    """User registration request schema"""
    email: str = Field(..., description="User email address")
    password: str = Field(..., max_length=128, description="User password")
    name: Optional[str] = Field(None, max_length=255, description="Display name")

    @field_validator('email')
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return validate_new_password(v)


class GoogleAuthorizationResponse(BaseSchema):
    """Where to send the browser, and the state value to check on the callback"""
    authorization_url: str
    state: str


class GoogleSignInRequest(BaseSchema):
    """Authorization code returned to the client by Google's consent screen"""
    code: str = Field(..., min_length=1)
    redirect_uri: Optional[str] = Field(None, description="Redirect URI used to obtain the code")


class RefreshTokenRequest(BaseSchema):
    refresh_token: str = Field(..., min_length=1)


class EmailVerificationRequest(BaseSchema):
    token: str = Field(..., min_length=1, description="Verification token from the email link")


class ResendVerificationRequest(BaseSchema):
    email: str = Field(..., description="Address of the unverified account")

    @field_validator('email')
    @classmethod
    def validate_email_format(cls, v):
        return validate_email(v)


class ChangePasswordRequest(BaseSchema):
    """Change password request schema"""
    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(..., max_length=128, description="New password")

    @field_validator('current_password')
    @classmethod
    def validate_current_password(cls, v):
        return validate_non_empty_string(v)

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v):
        return validate_new_password(v)


class SetPasswordRequest(BaseSchema):
    new_password: str = Field(..., max_length=128)

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v):
        return validate_new_password(v)


class TokenResponse(BaseSchema):
    """Session token pair"""
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token lifetime in seconds")


class SignInResponse(TokenResponse):
    user_id: int
    is_new_account: bool = False


class RegisterResponse(BaseSchema):
    user_id: int
    email: str
    email_verified: bool
    message: str = "Account created. Check your inbox to verify your email address."


class LoginMethodsResponse(BaseSchema):
    has_password: bool
    has_google: bool


class UserProfile(BaseSchema):
    """Signed-in user with roles and effective permissions"""
    id: int
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    email_verified: bool
    has_password: bool
    has_google: bool
    roles: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
