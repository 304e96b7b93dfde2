from fastapi import APIRouter

from institute.routers.admin import admin_router
from institute.routers.contact import contact_router
from institute.routers.health import health_router
from institute.routers.public import public_router
from institute.routers.role_perms import role_perms_router

main_router = APIRouter()
main_router.include_router(health_router, tags=["health"])
main_router.include_router(public_router, prefix="/public", tags=["public"])
main_router.include_router(contact_router, tags=["contact"])
main_router.include_router(role_perms_router, tags=["roles"])
main_router.include_router(admin_router, prefix="/admin", tags=["admin"])
