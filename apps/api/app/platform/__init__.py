from app.platform.security import (
    AuthorizationContext,
    AuthorizationDenied,
    AuthorizationError,
    AuthorizationMiddleware,
    Decision,
    PolicyEvaluator,
    PolicyRegistry,
    Role,
    RoleResolver,
)

__all__ = [
    "AuthorizationContext",
    "AuthorizationDenied",
    "AuthorizationError",
    "AuthorizationMiddleware",
    "Decision",
    "PolicyEvaluator",
    "PolicyRegistry",
    "Role",
    "RoleResolver",
]
