from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any

from app.platform.security.errors import UnconfiguredPolicy
from app.platform.security.roles import Role


class Operation(StrEnum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class EntityClass(StrEnum):
    GENERAL = "general"
    FINANCIAL = "financial"
    PROFILE = "profile"


class PredicateKind(StrEnum):
    OPEN_READ = "OpenRead"
    OWNER_OR_ADMIN = "OwnerOrAdmin"
    ELEVATED_ROLE_ONLY = "ElevatedRoleOnly"
    ADMIN_ONLY = "AdminOnly"
    SELF_ONLY = "SelfOnly"


@dataclass(frozen=True, slots=True)
class PolicyRule:
    kind: PredicateKind
    role: Role | None = None
    fields: tuple[str, ...] = ()

    def describe(self) -> str:
        if self.kind == PredicateKind.ELEVATED_ROLE_ONLY and self.role is not None:
            return f"{self.kind.value}({self.role.value})"
        if self.fields:
            return f"{self.kind.value}[{', '.join(self.fields)}]"
        return self.kind.value


@dataclass(frozen=True, slots=True)
class EntityPolicy:
    entity_type: str
    entity_class: EntityClass
    rules: Mapping[Operation, PolicyRule]
    # Columns only an Admin may set to anything but their default or change.
    admin_fields: tuple[str, ...] = ()


OPEN_READ = PolicyRule(PredicateKind.OPEN_READ)
ADMIN_ONLY = PolicyRule(PredicateKind.ADMIN_ONLY)
FINANCE_ONLY = PolicyRule(PredicateKind.ELEVATED_ROLE_ONLY, role=Role.FINANCE)
SELF_ONLY = PolicyRule(PredicateKind.SELF_ONLY, fields=("id",))


def _general(entity_type: str, primary_owner: str, *co_owners: str) -> EntityPolicy:
    return EntityPolicy(
        entity_type=entity_type,
        entity_class=EntityClass.GENERAL,
        rules=MappingProxyType(
            {
                Operation.SELECT: OPEN_READ,
                Operation.INSERT: PolicyRule(PredicateKind.OWNER_OR_ADMIN, fields=(primary_owner,)),
                Operation.UPDATE: PolicyRule(PredicateKind.OWNER_OR_ADMIN, fields=(primary_owner, *co_owners)),
                Operation.DELETE: ADMIN_ONLY,
            }
        ),
    )


def _financial(entity_type: str) -> EntityPolicy:
    return EntityPolicy(
        entity_type=entity_type,
        entity_class=EntityClass.FINANCIAL,
        rules=MappingProxyType(
            {
                Operation.SELECT: OPEN_READ,
                Operation.INSERT: FINANCE_ONLY,
                Operation.UPDATE: FINANCE_ONLY,
                Operation.DELETE: ADMIN_ONLY,
            }
        ),
    )


def _profile(entity_type: str) -> EntityPolicy:
    return EntityPolicy(
        entity_type=entity_type,
        entity_class=EntityClass.PROFILE,
        admin_fields=("role",),
        rules=MappingProxyType(
            {
                Operation.SELECT: OPEN_READ,
                Operation.INSERT: SELF_ONLY,
                Operation.UPDATE: SELF_ONLY,
                Operation.DELETE: ADMIN_ONLY,
            }
        ),
    )


POLICY_TABLE: Mapping[str, EntityPolicy] = MappingProxyType(
    {
        policy.entity_type: policy
        for policy in (
            _general("lead", "created_by", "assigned_to"),
            _general("deal", "created_by", "deal_owner"),
            _general("proposal", "created_by", "assigned_to"),
            _general("closer_report", "submitted_by"),
            _general("setter_report", "submitted_by"),
            _financial("offer"),
            _financial("cash_entry"),
            _financial("expense"),
            _profile("user"),
        )
    }
)


class PolicyRegistry:
    """Read-only view over the fixed (entity, operation) policy table."""

    def __init__(self, table: Mapping[str, EntityPolicy] | None = None) -> None:
        self._table = POLICY_TABLE if table is None else table

    def entity_types(self) -> list[str]:
        return sorted(self._table)

    def entity_policy(self, entity_type: str) -> EntityPolicy:
        policy = self._table.get(entity_type)
        if policy is None:
            raise UnconfiguredPolicy(entity_type, "*")
        return policy

    def admin_fields(self, entity_type: str) -> tuple[str, ...]:
        return self.entity_policy(entity_type).admin_fields

    def get_rule(self, entity_type: str, operation: Operation) -> PolicyRule:
        policy = self._table.get(entity_type)
        rule = policy.rules.get(operation) if policy is not None else None
        if rule is None:
            raise UnconfiguredPolicy(entity_type, operation.value)
        return rule

    def describe_policies(self) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        for entity_type in self.entity_types():
            policy = self._table[entity_type]
            for operation in Operation:
                rule = policy.rules.get(operation)
                rows.append(
                    {
                        "entity": entity_type,
                        "entity_class": policy.entity_class.value,
                        "operation": operation.value,
                        "predicate": rule.kind.value if rule is not None else None,
                        "role": rule.role.value if rule is not None and rule.role is not None else None,
                        "fields": list(rule.fields) if rule is not None else [],
                        "configured": rule is not None,
                        "admin_fields": list(policy.admin_fields),
                    }
                )
        return rows


policy_registry = PolicyRegistry()
