from fastapi import APIRouter, Depends, Request, status

from institute.middlewares.owner_guard_middleware import require_admin_token
from institute.schemas.auth_schemas import RolePermsPayload
from institute.services.admin_role_service import RolePermsStore, get_role_perms_store
from institute.utils.errors import NotFoundError
from institute.utils.responses import ResponseBuilder

role_perms_router = APIRouter()


@role_perms_router.get(
    "/role-perms",
    status_code=status.HTTP_200_OK,
    summary="List stored role permissions",
)
async def list_role_perms(
    request: Request,
    role_perms_store: RolePermsStore = Depends(get_role_perms_store),
):
    return ResponseBuilder.items(
        request=request, items=[item.to_json_dict() for item in role_perms_store.list()]
    )


@role_perms_router.get(
    "/role-perms/{role_id}",
    status_code=status.HTTP_200_OK,
    summary="Get the stored permissions of one role",
)
async def get_role_perms(
    request: Request,
    role_id: str,
    role_perms_store: RolePermsStore = Depends(get_role_perms_store),
):
    permissions = role_perms_store.get(role_id)
    if permissions is None:
        raise NotFoundError(f"No permissions stored for {role_id}", "ROLE_PERMS_NOT_FOUND")
    return ResponseBuilder.success(
        request=request, data={"roleId": role_id, "permissions": permissions}
    )


@role_perms_router.post(
    "/admin/role-perms",
    status_code=status.HTTP_200_OK,
    summary="Save the permissions of a role",
    dependencies=[Depends(require_admin_token)],
)
async def save_role_perms(
    request: Request,
    payload: RolePermsPayload,
    role_perms_store: RolePermsStore = Depends(get_role_perms_store),
):
    item = role_perms_store.save(payload.role_id, payload.permissions)
    return ResponseBuilder.item(request=request, item=item.to_json_dict())
