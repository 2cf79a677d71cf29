from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.auth import CurrentPrincipal
from app.core.permissions import get_user_permissions
from app.core.rate_limit import rate_limit, reset_rate_limit
from app.core.security import block_malicious_requests
from app.db.database import get_db_session
from app.schemas.auth import LoginRequest, RegisteredUser, RegisterRequest, SessionInfo, TokenResponse
from app.schemas.common import ApiResponse
from app.schemas.user import UserRead
from app.services.audit_service import ClientInfo
from app.services.auth_service import AuthService

router = APIRouter(
    prefix="/auth",
    tags=["Auth"],
    dependencies=[Depends(block_malicious_requests)],
)


def get_auth_service(session: Annotated[Session, Depends(get_db_session)]) -> AuthService:
    return AuthService(session)


AuthServiceDep = Annotated[AuthService, Depends(get_auth_service)]


@router.post(
    "/register",
    response_model=ApiResponse[RegisteredUser],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("auth"))],
)
def register(request: Request, payload: RegisterRequest, service: AuthServiceDep) -> ApiResponse[RegisteredUser]:
    """Public sign-up endpoint.

    Accounts created here always receive the ``user`` role.

    Raises:
        ValidationAppError: 400 with password feedback for a weak password.
        ConflictAppError: 409 when the email is already registered.
    """
    user = service.register(payload, ClientInfo.from_request(request))
    return ApiResponse(
        data=RegisteredUser(id=user.id, name=user.name, email=user.email, role=user.role),
        message="User registered successfully",
    )


@router.post(
    "/login",
    response_model=ApiResponse[TokenResponse],
    dependencies=[Depends(rate_limit("login"))],
)
def login(request: Request, payload: LoginRequest, service: AuthServiceDep) -> ApiResponse[TokenResponse]:
    """Exchange email and password for a bearer session token.

    A successful login clears the caller's ``login`` rate limit budget;
    the registration budget is left untouched.

    Raises:
        AuthenticationAppError: 401 for bad credentials or a deactivated account.
    """
    user, token, expires_in = service.authenticate(payload, ClientInfo.from_request(request))
    reset_rate_limit("login", request)
    return ApiResponse(
        data=TokenResponse(
            access_token=token,
            expires_in=expires_in,
            user=UserRead.model_validate(user),
        ),
        message="Login successful",
    )


@router.get("/me", response_model=ApiResponse[SessionInfo])
def me(principal: CurrentPrincipal) -> ApiResponse[SessionInfo]:
    """Return the calling account and its effective permissions."""
    permissions = sorted(permission.value for permission in get_user_permissions(principal.role))
    return ApiResponse(
        data=SessionInfo(
            id=principal.id,
            name=principal.name,
            email=principal.email,
            role=principal.role,
            permissions=permissions,
        )
    )
