# biovote/authentication/rbac.py

from enum import Enum
from functools import wraps

from flask_jwt_extended import get_jwt, verify_jwt_in_request

from biovote.errors import Unauthorized

# Role-based access control over session token claims


class UserRole(Enum):
    VOTER = "voter"
    ADMIN = "admin"


class Permission(Enum):
    VOTE = "vote"
    VIEW_OWN_STATUS = "view_own_status"
    MANAGE_ELECTIONS = "manage_elections"
    MANAGE_CANDIDATES = "manage_candidates"
    VIEW_RESULTS = "view_results"


# Role -> Permissions mapping
ROLE_PERMISSIONS = {
    UserRole.VOTER: [
        Permission.VOTE,
        Permission.VIEW_OWN_STATUS,
    ],
    UserRole.ADMIN: [
        Permission.MANAGE_ELECTIONS,
        Permission.MANAGE_CANDIDATES,
        Permission.VIEW_RESULTS,
    ],
}


class RBACService:
    def has_permission(self, user_role, permission):
        try:
            if isinstance(user_role, str):
                user_role = UserRole(user_role.lower().strip())
            if isinstance(permission, str):
                permission = Permission(permission)
        except ValueError:
            return False
        return permission in ROLE_PERMISSIONS.get(user_role, [])


rbac_service = RBACService()


# Decorator for required permission; must wrap a view that runs inside a request
def require_permission(permission):
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            role = get_jwt().get("role")
            if not role or not rbac_service.has_permission(role, permission):
                raise Unauthorized("Insufficient role for this operation")
            return func(*args, **kwargs)
        return wrapper
    return decorator
