from typing import Any, Dict, List, Optional

from pydantic import Field

from .camel_base_model import CamelCaseBaseModel as BaseModel

# module -> action -> allowed, e.g. {"enquiries": {"view": True, "delete": False}}
RolePermissions = Dict[str, Dict[str, bool]]


class AuthUser(BaseModel):
    """Signed-in user as seen by the client and the API server"""

    id: str = Field(..., description="Identity service user ID")
    email: Optional[str] = Field(None, description="Email address")
    role: Optional[str] = Field(None, description="Role claim: owner or limited")
    app_role_id: Optional[str] = Field(None, description="Dynamic role ID, e.g. role-frontdesk")
    access_token: Optional[str] = Field(None, description="Bearer token of the current session")
    user_metadata: Dict[str, Any] = Field(default_factory=dict, description="Raw user metadata")


class LoginRequest(BaseModel):
    """Login request schema"""

    email: str = Field(..., min_length=3, description="Email")
    password: str = Field(..., min_length=1, description="Password")


class SetRoleItem(BaseModel):
    email: str = Field(..., description="Email of the user to update")
    role: str = Field(..., description="Role or dynamic role ID to assign")


class SetRoleResult(BaseModel):
    email: Optional[str] = Field(None, description="Email from the request item")
    ok: bool = Field(..., description="Whether the role was applied")
    error: Optional[str] = Field(None, description="Failure detail")
    applied_claim: Optional[str] = Field(None, description="Claim written for owner-token requests")


class RolePermsPayload(BaseModel):
    role_id: str = Field(..., min_length=1, description="Dynamic role ID")
    permissions: RolePermissions = Field(..., description="Module permissions of the role")


class RolePermsItem(BaseModel):
    role_id: str
    permissions: RolePermissions


class RoleDefinition(BaseModel):
    id: str
    name: str
    permissions: RolePermissions
    members: List[str] = Field(default_factory=list)
