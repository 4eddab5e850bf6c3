from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any

from app.metrics import observe_unconfigured_policy
from app.platform.security.errors import UnconfiguredPolicy
from app.platform.security.registry import Operation, PolicyRegistry, PolicyRule, PredicateKind, policy_registry
from app.platform.security.roles import Role


Image = Mapping[str, Any]


class Decision(StrEnum):
    ALLOW = "allow"
    DENY = "deny"


class GatePhase(StrEnum):
    PRE = "pre"
    POST = "post"


# Which images each operation is judged against, in gate order.
OPERATION_PHASES: Mapping[Operation, tuple[GatePhase, ...]] = {
    Operation.SELECT: (GatePhase.PRE,),
    Operation.INSERT: (GatePhase.POST,),
    Operation.UPDATE: (GatePhase.PRE, GatePhase.POST),
    Operation.DELETE: (GatePhase.PRE,),
}


def _same_principal(value: Any, principal_id: str) -> bool:
    if value is None:
        return False
    return str(value) == principal_id


class PolicyEvaluator:
    """Pure allow/deny decisions over the policy registry.

    Deny is an ordinary return value. The only failure is a missing registry
    entry, which raises UnconfiguredPolicy before any role is considered.
    A role of None stands for a principal without a profile; only the
    self-only predicate on insert can admit it.
    """

    def __init__(self, registry: PolicyRegistry | None = None) -> None:
        self._registry = registry or policy_registry

    def rule_for(self, entity_type: str, operation: Operation) -> PolicyRule:
        try:
            return self._registry.get_rule(entity_type, operation)
        except UnconfiguredPolicy:
            observe_unconfigured_policy(entity=entity_type, operation=operation.value)
            raise

    def evaluate(
        self,
        principal_id: Any,
        role: Role | None,
        operation: Operation,
        entity_type: str,
        pre_image: Image | None = None,
        post_image: Image | None = None,
    ) -> Decision:
        images = {GatePhase.PRE: pre_image, GatePhase.POST: post_image}
        for phase in OPERATION_PHASES[operation]:
            decision = self.evaluate_phase(principal_id, role, operation, entity_type, images[phase], phase)
            if decision == Decision.DENY:
                return Decision.DENY
        return Decision.ALLOW

    def evaluate_phase(
        self,
        principal_id: Any,
        role: Role | None,
        operation: Operation,
        entity_type: str,
        image: Image | None,
        phase: GatePhase,
    ) -> Decision:
        rule = self.rule_for(entity_type, operation)
        if role is Role.ADMIN:
            return Decision.ALLOW
        allowed = self._check(rule, str(principal_id), role, operation, image or {}, phase)
        return Decision.ALLOW if allowed else Decision.DENY

    def _check(
        self,
        rule: PolicyRule,
        principal_id: str,
        role: Role | None,
        operation: Operation,
        image: Image,
        phase: GatePhase,
    ) -> bool:
        if role is None:
            if not self.admits_unresolved(rule, operation) or phase != GatePhase.POST:
                return False
            return self._owns(rule, principal_id, image)
        if rule.kind == PredicateKind.OPEN_READ:
            return operation == Operation.SELECT
        if rule.kind == PredicateKind.ADMIN_ONLY:
            return False
        if rule.kind == PredicateKind.ELEVATED_ROLE_ONLY:
            return rule.role is not None and role.satisfies(rule.role)
        if rule.kind in (PredicateKind.OWNER_OR_ADMIN, PredicateKind.SELF_ONLY):
            if operation == Operation.INSERT and phase != GatePhase.POST:
                return False
            return self._owns(rule, principal_id, image)
        return False

    @staticmethod
    def admits_unresolved(rule: PolicyRule, operation: Operation) -> bool:
        """Whether a principal without a profile may attempt this operation at all.

        Only creating a profile for oneself qualifies; owning any other record
        still requires a resolved role.
        """

        return operation == Operation.INSERT and rule.kind == PredicateKind.SELF_ONLY

    @staticmethod
    def _owns(rule: PolicyRule, principal_id: str, image: Image) -> bool:
        return any(_same_principal(image.get(field), principal_id) for field in rule.fields)

    def evaluate_admin_fields(self, role: Role | None, entity_type: str, touched: Iterable[str]) -> Decision:
        """Deny when a non-Admin sets or changes a column reserved for Admins."""

        if role is Role.ADMIN:
            return Decision.ALLOW
        reserved = set(self._registry.admin_fields(entity_type))
        return Decision.DENY if reserved.intersection(touched) else Decision.ALLOW


policy_evaluator = PolicyEvaluator()
