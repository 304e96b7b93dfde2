import json
from typing import Dict, List, Optional

from institute.providers.public_api_client import PublicApiClient
from institute.schemas.auth_schemas import AuthUser, RoleDefinition, RolePermissions
from institute.services.auth_service import OWNER_ROLE
from institute.services.local_cache import LocalCache
from institute.utils.logging import get_logger

logger = get_logger()

ACTIONS = ("view", "add", "edit", "delete")
MODULES = (
    "enquiries",
    "admissions",
    "courses",
    "students",
    "certificates",
    "contacts",
    "roles",
)


def _grant(*actions: str) -> Dict[str, bool]:
    return {action: action in actions for action in ACTIONS}


SEED_ROLES: List[RoleDefinition] = [
    RoleDefinition(
        id="role-owner",
        name="Owner",
        permissions={module: _grant(*ACTIONS) for module in MODULES},
    ),
    RoleDefinition(
        id="role-frontdesk",
        name="Front Desk",
        permissions={
            "enquiries": _grant("view", "add", "edit"),
            "admissions": _grant("view", "add"),
            "courses": _grant("view"),
            "students": _grant("view"),
            "certificates": _grant("view"),
            "contacts": _grant("view"),
            "roles": _grant(),
        },
    ),
    RoleDefinition(
        id="role-accounts",
        name="Accounts",
        permissions={
            "enquiries": _grant("view"),
            "admissions": _grant("view", "edit"),
            "courses": _grant("view"),
            "students": _grant("view", "edit"),
            "certificates": _grant("view"),
            "contacts": _grant(),
            "roles": _grant(),
        },
    ),
]


def role_perms_key(role_id: str) -> str:
    return f"rolePerms:{role_id}"


def seed_permissions(role_id: str) -> Optional[RolePermissions]:
    for role in SEED_ROLES:
        if role.id == role_id:
            return role.permissions
    return None


class RolePermsService:
    """Resolves the permissions of a dynamic role: seed roles, then the API, then the local override"""

    def __init__(self, api: PublicApiClient, cache: LocalCache):
        self.api = api
        self.cache = cache

    async def resolve(self, app_role_id: Optional[str]) -> Optional[RolePermissions]:
        if not app_role_id:
            return None

        permissions = seed_permissions(app_role_id)

        if self.api.configured():
            result = await self.api.get(f"/api/role-perms/{app_role_id}")
            if result.ok and isinstance(result.data.get("permissions"), dict):
                permissions = result.data["permissions"]

        raw = self.cache.get_raw(role_perms_key(app_role_id))
        if raw:
            try:
                override = json.loads(raw)
            except ValueError:
                logger.debug(f"Ignoring corrupt local permissions for {app_role_id}")
            else:
                if isinstance(override, dict):
                    permissions = override

        return permissions

    def save_local(self, app_role_id: str, permissions: RolePermissions) -> bool:
        return self.cache.set_raw(role_perms_key(app_role_id), json.dumps(permissions))


def can(
    user: Optional[AuthUser],
    permissions: Optional[RolePermissions],
    module: str,
    action: str = "view",
) -> bool:
    """Owners can do everything; everyone else needs an explicit grant."""
    if user is not None and user.role == OWNER_ROLE:
        return True
    if not permissions:
        return False
    grants = permissions.get(module)
    return bool(grants) and bool(grants.get(action))
