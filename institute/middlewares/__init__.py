from .request_id_middleware import *
from .security_middleware import *
from .owner_guard_middleware import *

__all__ = [
    "RequestIDMiddleware",
    "DevSecurityMiddleware",
    "ProdSecurityMiddleware",
    "OwnerGuardMiddleware",
    "require_owner",
    "require_admin_token",
]
