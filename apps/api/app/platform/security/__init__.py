from app.platform.security.context import AuthorizationContext
from app.platform.security.errors import (
    AuthorizationDenied,
    AuthorizationError,
    ForbiddenFieldError,
    NotFound,
    PrincipalNotFound,
    UnconfiguredPolicy,
    UnknownRole,
)
from app.platform.security.evaluator import Decision, GatePhase, PolicyEvaluator, policy_evaluator
from app.platform.security.middleware import AuthorizationMiddleware, record_image
from app.platform.security.registry import (
    EntityClass,
    Operation,
    PolicyRegistry,
    PolicyRule,
    PredicateKind,
    policy_registry,
)
from app.platform.security.resolver import RoleResolver, role_resolver
from app.platform.security.roles import Role

__all__ = [
    "AuthorizationContext",
    "AuthorizationDenied",
    "AuthorizationError",
    "AuthorizationMiddleware",
    "Decision",
    "EntityClass",
    "ForbiddenFieldError",
    "GatePhase",
    "NotFound",
    "Operation",
    "PolicyEvaluator",
    "PolicyRegistry",
    "PolicyRule",
    "PredicateKind",
    "PrincipalNotFound",
    "Role",
    "RoleResolver",
    "UnconfiguredPolicy",
    "UnknownRole",
    "policy_evaluator",
    "policy_registry",
    "record_image",
    "role_resolver",
]
