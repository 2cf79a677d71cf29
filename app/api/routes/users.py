from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from app.core.auth import CurrentPrincipal
from app.core.rate_limit import rate_limit
from app.core.security import block_malicious_requests
from app.db.database import get_db_session
from app.schemas.common import ApiResponse, PaginatedResponse, Pagination
from app.schemas.user import UserCreate, UserListQuery, UserUpdate
from app.services.audit_service import ClientInfo
from app.services.user_service import UserService, filter_user_fields

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(block_malicious_requests)],
)


def get_user_service(session: Annotated[Session, Depends(get_db_session)]) -> UserService:
    return UserService(session)


UserServiceDep = Annotated[UserService, Depends(get_user_service)]
UserId = Annotated[int, Path(ge=1, description="Numeric user id.")]


@router.get(
    "",
    response_model=PaginatedResponse[dict[str, Any]],
    dependencies=[Depends(rate_limit("api"))],
)
def list_users(
    request: Request,
    principal: CurrentPrincipal,
    service: UserServiceDep,
    query: Annotated[UserListQuery, Query()],
) -> PaginatedResponse[dict[str, Any]]:
    """List users with pagination, search and sorting.

    Search is a case-insensitive substring match over name, email and
    department. Returned fields depend on the caller's role.

    Raises:
        PermissionAppError: 403 when the caller may not list users.
    """
    users, total = service.list_users(principal, query, ClientInfo.from_request(request))
    return PaginatedResponse(
        data=users,
        pagination=Pagination.build(page=query.page, limit=query.limit, total=total),
    )


@router.post(
    "",
    response_model=ApiResponse[dict[str, Any]],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("sensitive"))],
)
def create_user(
    request: Request,
    payload: UserCreate,
    principal: CurrentPrincipal,
    service: UserServiceDep,
) -> ApiResponse[dict[str, Any]]:
    """Create an account with a role the caller is allowed to assign.

    Raises:
        PermissionAppError: 403 without create permission or for a role above
            the caller's own.
        ValidationAppError: 400 when the password is not strong enough.
        ConflictAppError: 409 when the email is already registered.
    """
    user = service.create_user(principal, payload, ClientInfo.from_request(request))
    return ApiResponse(data=filter_user_fields(user, principal), message="User created successfully")


@router.get(
    "/{user_id}",
    response_model=ApiResponse[dict[str, Any]],
    dependencies=[Depends(rate_limit("api"))],
)
def get_user(
    request: Request,
    user_id: UserId,
    principal: CurrentPrincipal,
    service: UserServiceDep,
) -> ApiResponse[dict[str, Any]]:
    user = service.get_user(principal, user_id, ClientInfo.from_request(request))
    return ApiResponse(data=filter_user_fields(user, principal))


@router.put(
    "/{user_id}",
    response_model=ApiResponse[dict[str, Any]],
    dependencies=[Depends(rate_limit("sensitive"))],
)
def update_user(
    request: Request,
    user_id: UserId,
    payload: UserUpdate,
    principal: CurrentPrincipal,
    service: UserServiceDep,
) -> ApiResponse[dict[str, Any]]:
    """Apply a partial update to an account.

    Users may edit their own profile; changing a role or the active flag
    needs the corresponding management permission and never applies to the
    caller's own account.
    """
    user = service.update_user(principal, user_id, payload, ClientInfo.from_request(request))
    return ApiResponse(data=filter_user_fields(user, principal), message="User updated successfully")


@router.delete(
    "/{user_id}",
    response_model=ApiResponse[None],
    dependencies=[Depends(rate_limit("sensitive"))],
)
def delete_user(
    request: Request,
    user_id: UserId,
    principal: CurrentPrincipal,
    service: UserServiceDep,
) -> ApiResponse[None]:
    service.delete_user(principal, user_id, ClientInfo.from_request(request))
    return ApiResponse(message="User deleted successfully")
