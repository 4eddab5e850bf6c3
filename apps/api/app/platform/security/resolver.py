from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.database import pinned
from app.metrics import observe_role_cache_hit, observe_role_lookup
from app.platform.security.context import AuthorizationContext
from app.platform.security.errors import PrincipalNotFound, UnknownRole
from app.platform.security.roles import Role
from app.sales.models import UserProfile


logger = logging.getLogger("app.authz")


class RoleResolver:
    """Resolve a principal's role at most once per authorization context."""

    CACHE_KEY = "authz.role"

    def resolve(self, session: Session, ctx: AuthorizationContext) -> Role:
        cached = ctx._cache.get(self.CACHE_KEY)
        if isinstance(cached, Role):
            observe_role_cache_hit()
            return cached

        role = self._load_role(session, ctx.principal_id)
        ctx._cache[self.CACHE_KEY] = role
        return role

    def _load_role(self, session: Session, principal_id: str) -> Role:
        try:
            profile_id = uuid.UUID(str(principal_id))
        except ValueError:
            raise PrincipalNotFound(principal_id) from None

        observe_role_lookup()
        raw_role = session.scalar(pinned(select(UserProfile.role).where(UserProfile.id == profile_id)))
        if raw_role is None:
            raise PrincipalNotFound(principal_id)

        role = Role.parse(raw_role)
        if role is None:
            logger.warning("authz.unknown_role", extra={"role": raw_role, "reason": "unknown_role"})
            raise UnknownRole(principal_id, raw_role)
        return role


role_resolver = RoleResolver()
