from typing import Any, List, Union

from fastapi import APIRouter, Body, Depends, Request, status

from institute.middlewares.owner_guard_middleware import require_admin_token, require_owner
from institute.services.admin_role_service import AdminRoleService, get_admin_role_service
from institute.utils.errors import BusinessLogicError, RecordValidationError
from institute.utils.responses import ResponseBuilder

admin_router = APIRouter()


def _as_items(payload: Union[List[Any], Any]) -> List[Any]:
    return payload if isinstance(payload, list) else [payload]


def _require_configured(admin_role_service: AdminRoleService) -> None:
    if not admin_role_service.configured():
        raise BusinessLogicError("Admin not configured", "ADMIN_NOT_CONFIGURED")


@admin_router.post(
    "/set-role",
    status_code=status.HTTP_200_OK,
    summary="Assign roles with the admin token",
    dependencies=[Depends(require_admin_token)],
)
async def set_role(
    request: Request,
    payload: Any = Body(...),
    admin_role_service: AdminRoleService = Depends(get_admin_role_service),
):
    _require_configured(admin_role_service)
    results = await admin_role_service.set_roles(_as_items(payload))
    return ResponseBuilder.success(
        request=request, data={"results": [r.to_json_dict() for r in results]}
    )


@admin_router.post(
    "/set-role-auth",
    status_code=status.HTTP_200_OK,
    summary="Assign roles with an owner's bearer token",
    description="Requested roles are stored as the owner or limited claim; the requested role becomes the dynamic role ID",
    dependencies=[Depends(require_owner)],
)
async def set_role_auth(
    request: Request,
    payload: Any = Body(...),
    admin_role_service: AdminRoleService = Depends(get_admin_role_service),
):
    _require_configured(admin_role_service)
    results = await admin_role_service.set_roles(_as_items(payload), map_claims=True)
    return ResponseBuilder.success(
        request=request, data={"results": [r.to_json_dict() for r in results]}
    )


@admin_router.get(
    "/set-role",
    status_code=status.HTTP_200_OK,
    summary="Assign a single role via query parameters",
    dependencies=[Depends(require_admin_token)],
)
async def set_role_query(
    request: Request,
    email: str = "",
    role: str = "",
    admin_role_service: AdminRoleService = Depends(get_admin_role_service),
):
    _require_configured(admin_role_service)
    if not email or not role:
        raise RecordValidationError("email and role are required")
    await admin_role_service.apply_role(email, role)
    return ResponseBuilder.success(request=request, data={"email": email, "role": role})
