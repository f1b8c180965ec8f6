"""
Authentication Endpoints
Registration, password and Google sign-in, email verification and account management
"""

import secrets
from typing import Any, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import get_current_user, require_permission
from app.core.exceptions import AuthenticationRequired
from app.core.permission_resolver import permission_resolver
from app.core.rbac import PermissionName
from app.core.security import (
    PROVIDER_ACCESS_TOKEN_CLAIM,
    PROVIDER_REFRESH_TOKEN_CLAIM,
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_session_token,
)
from app.models.user import User
from app.repositories.user import user_repository
from app.schemas.auth import (
    ChangePasswordRequest,
    EmailVerificationRequest,
    GoogleAuthorizationResponse,
    GoogleSignInRequest,
    LoginMethodsResponse,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    RegisterResponse,
    ResendVerificationRequest,
    SetPasswordRequest,
    SignInResponse,
    TokenResponse,
    UserProfile,
)
from app.schemas.base import SuccessResponse
from app.services.account import CredentialsAssertion, account_service
from app.services.email_service import email_service
from app.services.google_oauth import google_oauth_client

logger = structlog.get_logger()
router = APIRouter()


def _send_verification_email_background(to_email: str, token: str, name: Optional[str]) -> None:
    try:
        email_service.send_verification_email(to_email=to_email, token=token, name=name)
    except Exception as exc:  # noqa: BLE001
        logger.error(
            "Failed to send verification email",
            to_email=to_email,
            error=str(exc),
        )


def _issue_tokens(
    user_id: int,
    provider_access_token: Optional[str] = None,
    provider_refresh_token: Optional[str] = None,
) -> dict:
    claims = {
        PROVIDER_ACCESS_TOKEN_CLAIM: provider_access_token,
        PROVIDER_REFRESH_TOKEN_CLAIM: provider_refresh_token,
    }
    return {
        "access_token": create_access_token(user_id, additional_claims=claims),
        "refresh_token": create_refresh_token(user_id, additional_claims=claims),
        "token_type": "bearer",
        "expires_in": settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    }


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    register_data: RegisterRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Create a password account

    The verification email goes out after the response; a delivery failure
    does not undo the registration.
    """
    result = await account_service.register(
        db,
        email=register_data.email,
        password=register_data.password,
        name=register_data.name,
    )
    background_tasks.add_task(
        _send_verification_email_background,
        result.user.email,
        result.verification_token,
        result.user.name,
    )
    return RegisterResponse(
        user_id=result.user.id,
        email=result.user.email,
        email_verified=result.user.email_verified,
    )


@router.post("/login", response_model=SignInResponse)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """Password sign-in"""
    result = await account_service.resolve_sign_in(
        db, CredentialsAssertion(email=login_data.email, password=login_data.password)
    )
    return SignInResponse(user_id=result.user_id, is_new_account=False, **_issue_tokens(result.user_id))


@router.get("/oauth/google/authorize", response_model=GoogleAuthorizationResponse)
async def google_authorization_url(redirect_uri: Optional[str] = None) -> Any:
    """Build the Google consent screen URL with a fresh state value"""
    state = secrets.token_urlsafe(24)
    return GoogleAuthorizationResponse(
        authorization_url=google_oauth_client.authorization_url(state=state, redirect_uri=redirect_uri),
        state=state,
    )


@router.post("/oauth/google", response_model=SignInResponse)
async def google_sign_in(
    request_data: GoogleSignInRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    """
    Google sign-in

    Exchanges the authorization code, then creates or merges the account keyed
    by the Google-verified email. The Google tokens ride along in the session
    so calendar reads can use them.
    """
    assertion = await google_oauth_client.sign_in(
        code=request_data.code, redirect_uri=request_data.redirect_uri
    )
    result = await account_service.resolve_sign_in(db, assertion)
    tokens = _issue_tokens(
        result.user_id,
        provider_access_token=assertion.access_token,
        provider_refresh_token=assertion.refresh_token,
    )
    return SignInResponse(user_id=result.user_id, is_new_account=result.is_new_account, **tokens)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    session = decode_session_token(refresh_data.refresh_token, token_type=REFRESH_TOKEN_TYPE)
    if await user_repository.get(db, session.user_id) is None:
        logger.info("Refresh for deleted user rejected", user_id=session.user_id)
        raise AuthenticationRequired()

    return TokenResponse(
        **_issue_tokens(
            session.user_id,
            provider_access_token=session.provider_access_token,
            provider_refresh_token=session.provider_refresh_token,
        )
    )


@router.post("/verify-email", response_model=SuccessResponse)
async def verify_email(
    verification_data: EmailVerificationRequest,
    db: AsyncSession = Depends(get_db),
) -> Any:
    user = await account_service.verify_email(db, verification_data.token)
    return SuccessResponse(message="Email verified successfully", data={"user_id": user.id})


@router.post("/resend-verification", response_model=SuccessResponse)
async def resend_verification(
    resend_data: ResendVerificationRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
) -> Any:
    result = await account_service.resend_verification(db, resend_data.email)
    background_tasks.add_task(
        _send_verification_email_background,
        result.user.email,
        result.verification_token,
        result.user.name,
    )
    return SuccessResponse(message="Verification email sent")


@router.post("/change-password", response_model=SuccessResponse)
async def change_password(
    password_data: ChangePasswordRequest,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(require_permission(PermissionName.AUTH_UPDATE)),
) -> Any:
    await account_service.change_password(
        db,
        user_id,
        current_password=password_data.current_password,
        new_password=password_data.new_password,
    )
    return SuccessResponse(message="Password changed successfully")


@router.post("/set-password", response_model=SuccessResponse)
async def set_password(
    password_data: SetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(require_permission(PermissionName.AUTH_UPDATE)),
) -> Any:
    await account_service.set_password(db, user_id, new_password=password_data.new_password)
    return SuccessResponse(message="Password set successfully")


@router.delete("/account", response_model=SuccessResponse)
async def delete_account(
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(require_permission(PermissionName.AUTH_DELETE)),
) -> Any:
    await account_service.delete_account(db, user_id)
    return SuccessResponse(message="Account deleted")


@router.get("/login-methods", response_model=LoginMethodsResponse)
async def login_methods(
    db: AsyncSession = Depends(get_db),
    user_id: int = Depends(require_permission(PermissionName.AUTH_READ)),
) -> Any:
    methods = await account_service.login_methods(db, user_id)
    return LoginMethodsResponse(has_password=methods.has_password, has_google=methods.has_google)


@router.get("/me", response_model=UserProfile)
async def get_current_user_profile(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Any:
    snapshot = await permission_resolver.snapshot(db, current_user.id)
    roles = await permission_resolver.list_role_names(db, current_user.id)
    return UserProfile(
        id=current_user.id,
        email=current_user.email,
        name=current_user.name,
        image=current_user.image,
        email_verified=current_user.email_verified,
        has_password=current_user.has_password,
        has_google=current_user.has_google,
        roles=roles,
        permissions=list(snapshot.names),
        created_at=current_user.created_at,
    )
