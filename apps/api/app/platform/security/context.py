from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class AuthorizationContext:
    """Scope within which a principal's role is resolved once and reused.

    The cache lives and dies with the context; nothing is shared across
    contexts, so a role change only affects contexts opened afterwards.
    """

    principal_id: str
    correlation_id: str | None = None
    _cache: dict[str, Any] = field(default_factory=dict, repr=False)
