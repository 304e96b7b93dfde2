from typing import Any, List, Optional

from fastapi import Request
from supabase import AsyncClient, AuthError

from institute.db.json_store import JsonCollectionStore
from institute.schemas.auth_schemas import (
    RolePermissions,
    RolePermsItem,
    SetRoleItem,
    SetRoleResult,
)
from institute.services.auth_service import map_role_to_claim
from institute.utils.errors import BusinessLogicError, NotFoundError
from institute.utils.logging import get_logger

logger = get_logger()

USERS_PER_PAGE = 1000
MAX_USER_PAGES = 10
ROLE_PERMS_COLLECTION = "role-perms"


class AdminRoleService:
    """Assigns role claims to identity-service users (service-role client required)"""

    def __init__(self, admin_client: Optional[AsyncClient]):
        self.admin_client = admin_client

    def configured(self) -> bool:
        return self.admin_client is not None

    async def find_user_by_email(self, email: str) -> Optional[Any]:
        if not self.configured():
            return None
        target = email.strip().lower()
        for page in range(1, MAX_USER_PAGES + 1):
            try:
                users = await self.admin_client.auth.admin.list_users(
                    page=page, per_page=USERS_PER_PAGE
                )
            except AuthError as e:
                logger.warning(f"Listing users failed on page {page}: {e}")
                break
            for user in users or []:
                if (user.email or "").lower() == target:
                    return user
            if len(users or []) < USERS_PER_PAGE:
                break
        return None

    async def apply_role(self, email: str, role: str, claim: Optional[str] = None) -> None:
        """Write `role` (or the mapped `claim`) and `appRoleId` into the user's metadata."""
        if not self.configured():
            raise BusinessLogicError("Admin not configured", "ADMIN_NOT_CONFIGURED")
        user = await self.find_user_by_email(email)
        if user is None:
            raise NotFoundError("User not found", "USER_NOT_FOUND")
        await self.admin_client.auth.admin.update_user_by_id(
            user.id, {"user_metadata": {"role": claim or role, "appRoleId": role}}
        )
        logger.info(f"Assigned role {claim or role} ({role}) to {email}")

    async def set_roles(self, items: List[Any], map_claims: bool = False) -> List[SetRoleResult]:
        """
        Apply a batch of `{email, role}` items, reporting per item.

        With `map_claims` the stored role is collapsed to `owner` / `limited`
        and the requested role is kept as the dynamic role ID.
        """
        results: List[SetRoleResult] = []
        for raw in items:
            if not isinstance(raw, dict) or not isinstance(raw.get("email"), str) or not isinstance(raw.get("role"), str):
                email = raw.get("email") if isinstance(raw, dict) else None
                email = email if isinstance(email, str) else None
                results.append(SetRoleResult(email=email, ok=False, error="Invalid payload"))
                continue
            item = SetRoleItem(email=raw["email"], role=raw["role"])
            claim = map_role_to_claim(item.role) if map_claims else None
            try:
                await self.apply_role(item.email, item.role, claim)
            except (BusinessLogicError, NotFoundError) as e:
                results.append(SetRoleResult(email=item.email, ok=False, error=e.message))
            except AuthError as e:
                results.append(SetRoleResult(email=item.email, ok=False, error=str(e)))
            else:
                results.append(SetRoleResult(email=item.email, ok=True, applied_claim=claim))
        return results


class RolePermsStore:
    """Server-side persistence of dynamic role permissions"""

    def __init__(self, store: JsonCollectionStore):
        self.store = store

    def _all(self) -> dict:
        value = self.store.get_value(ROLE_PERMS_COLLECTION)
        return value if isinstance(value, dict) else {}

    def list(self) -> List[RolePermsItem]:
        return [
            RolePermsItem(role_id=role_id, permissions=permissions)
            for role_id, permissions in self._all().items()
        ]

    def get(self, role_id: str) -> Optional[RolePermissions]:
        return self._all().get(role_id)

    def save(self, role_id: str, permissions: RolePermissions) -> RolePermsItem:
        items = self._all()
        items[role_id] = permissions
        self.store.set_value(ROLE_PERMS_COLLECTION, items)
        return RolePermsItem(role_id=role_id, permissions=permissions)


def get_admin_role_service(request: Request) -> AdminRoleService:
    return AdminRoleService(request.app.state.supabase_admin)


def get_role_perms_store(request: Request) -> RolePermsStore:
    return RolePermsStore(request.app.state.server_store)
