from __future__ import annotations

import uuid
from types import MappingProxyType

import pytest
from prometheus_client import REGISTRY

from app.platform.security.errors import UnconfiguredPolicy
from app.platform.security.evaluator import Decision, GatePhase, PolicyEvaluator, policy_evaluator
from app.platform.security.registry import Operation, PolicyRegistry, policy_registry
from app.platform.security.roles import Role


P = str(uuid.uuid4())
Q = str(uuid.uuid4())

FINANCIAL = ("offer", "cash_entry", "expense")
GENERAL_PRIMARY = {
    "lead": "created_by",
    "deal": "created_by",
    "proposal": "created_by",
    "closer_report": "submitted_by",
    "setter_report": "submitted_by",
}
GENERAL_CO_OWNER = {"lead": "assigned_to", "deal": "deal_owner", "proposal": "assigned_to"}


def _evaluate(role: Role | None, operation: Operation, entity_type: str, pre=None, post=None, principal_id: str = P) -> Decision:
    return policy_evaluator.evaluate(principal_id, role, operation, entity_type, pre, post)


def test_role_hierarchy_is_closed() -> None:
    assert Role.ADMIN.satisfies(Role.FINANCE)
    assert Role.ADMIN.satisfies(Role.USER)
    assert Role.FINANCE.satisfies(Role.FINANCE)
    assert not Role.FINANCE.satisfies(Role.USER)
    assert not Role.USER.satisfies(Role.FINANCE)
    assert Role.parse("Finance") is Role.FINANCE
    assert Role.parse("superuser") is None


@pytest.mark.parametrize("entity_type", sorted(policy_registry.entity_types()))
@pytest.mark.parametrize("role", list(Role))
def test_select_is_open_to_every_resolved_role(entity_type: str, role: Role) -> None:
    assert _evaluate(role, Operation.SELECT, entity_type, pre={"created_by": Q}) == Decision.ALLOW


@pytest.mark.parametrize("entity_type", FINANCIAL)
def test_financial_writes_denied_for_user_regardless_of_ownership(entity_type: str) -> None:
    owned = {"id": str(uuid.uuid4()), "created_by": P}

    assert _evaluate(Role.USER, Operation.INSERT, entity_type, post=owned) == Decision.DENY
    assert _evaluate(Role.USER, Operation.UPDATE, entity_type, pre=owned, post=owned) == Decision.DENY


@pytest.mark.parametrize("entity_type", FINANCIAL)
def test_financial_writes_allowed_for_finance_without_ownership(entity_type: str) -> None:
    unowned = {"id": str(uuid.uuid4()), "created_by": None}

    assert _evaluate(Role.FINANCE, Operation.INSERT, entity_type, post=unowned) == Decision.ALLOW
    assert _evaluate(Role.FINANCE, Operation.UPDATE, entity_type, pre=unowned, post=unowned) == Decision.ALLOW


@pytest.mark.parametrize("entity_type", sorted(policy_registry.entity_types()))
@pytest.mark.parametrize("role", [Role.USER, Role.FINANCE])
def test_delete_denied_for_everyone_but_admin(entity_type: str, role: Role) -> None:
    image = {"id": P, "created_by": P, "submitted_by": P, "assigned_to": P, "deal_owner": P}

    assert _evaluate(role, Operation.DELETE, entity_type, pre=image) == Decision.DENY
    assert _evaluate(Role.ADMIN, Operation.DELETE, entity_type, pre=image) == Decision.ALLOW


@pytest.mark.parametrize("entity_type", sorted(GENERAL_PRIMARY))
def test_general_insert_requires_primary_owner(entity_type: str) -> None:
    primary = GENERAL_PRIMARY[entity_type]

    assert _evaluate(Role.USER, Operation.INSERT, entity_type, post={primary: P}) == Decision.ALLOW
    assert _evaluate(Role.USER, Operation.INSERT, entity_type, post={primary: Q}) == Decision.DENY
    assert _evaluate(Role.USER, Operation.INSERT, entity_type, post={primary: None}) == Decision.DENY
    assert _evaluate(Role.FINANCE, Operation.INSERT, entity_type, post={primary: Q}) == Decision.DENY
    assert _evaluate(Role.ADMIN, Operation.INSERT, entity_type, post={primary: Q}) == Decision.ALLOW


@pytest.mark.parametrize("entity_type", sorted(GENERAL_CO_OWNER))
def test_general_insert_ignores_co_owner(entity_type: str) -> None:
    image = {GENERAL_PRIMARY[entity_type]: Q, GENERAL_CO_OWNER[entity_type]: P}

    assert _evaluate(Role.USER, Operation.INSERT, entity_type, post=image) == Decision.DENY


@pytest.mark.parametrize("entity_type", sorted(GENERAL_CO_OWNER))
def test_general_update_allows_any_owner_in_both_images(entity_type: str) -> None:
    image = {GENERAL_PRIMARY[entity_type]: Q, GENERAL_CO_OWNER[entity_type]: P}

    assert _evaluate(Role.USER, Operation.UPDATE, entity_type, pre=image, post=dict(image)) == Decision.ALLOW


def test_general_update_denied_when_not_owner_before() -> None:
    pre = {"created_by": Q, "assigned_to": Q}
    post = {"created_by": Q, "assigned_to": P}

    assert _evaluate(Role.USER, Operation.UPDATE, "lead", pre=pre, post=post) == Decision.DENY


def test_general_update_denied_when_ownership_transferred_away() -> None:
    pre = {"created_by": P, "assigned_to": None}
    post = {"created_by": Q, "assigned_to": Q}

    assert policy_evaluator.evaluate_phase(P, Role.USER, Operation.UPDATE, "lead", pre, GatePhase.PRE) == Decision.ALLOW
    assert policy_evaluator.evaluate_phase(P, Role.USER, Operation.UPDATE, "lead", post, GatePhase.POST) == Decision.DENY
    assert _evaluate(Role.USER, Operation.UPDATE, "lead", pre=pre, post=post) == Decision.DENY


def test_admin_update_bypasses_ownership() -> None:
    image = {"created_by": Q, "assigned_to": Q}

    assert _evaluate(Role.ADMIN, Operation.UPDATE, "lead", pre=image, post=image) == Decision.ALLOW


def test_profile_writes_are_self_only() -> None:
    own = {"id": uuid.UUID(P), "role": "User"}
    other = {"id": uuid.UUID(Q), "role": "User"}

    assert _evaluate(Role.USER, Operation.INSERT, "user", post=own) == Decision.ALLOW
    assert _evaluate(Role.USER, Operation.INSERT, "user", post=other) == Decision.DENY
    assert _evaluate(Role.USER, Operation.UPDATE, "user", pre=own, post=own) == Decision.ALLOW
    assert _evaluate(Role.FINANCE, Operation.UPDATE, "user", pre=other, post=other) == Decision.DENY
    assert _evaluate(Role.ADMIN, Operation.UPDATE, "user", pre=other, post=other) == Decision.ALLOW


def test_principal_without_profile_may_only_create_its_own_profile() -> None:
    own = {"id": uuid.UUID(P), "role": "User"}
    other = {"id": uuid.UUID(Q), "role": "User"}

    assert policy_evaluator.admits_unresolved(policy_registry.get_rule("user", Operation.INSERT), Operation.INSERT)
    assert not policy_evaluator.admits_unresolved(policy_registry.get_rule("lead", Operation.INSERT), Operation.INSERT)
    assert _evaluate(None, Operation.INSERT, "user", post=own) == Decision.ALLOW
    assert _evaluate(None, Operation.INSERT, "user", post=other) == Decision.DENY
    assert _evaluate(None, Operation.INSERT, "lead", post={"created_by": P}) == Decision.DENY
    assert _evaluate(None, Operation.UPDATE, "user", pre=own, post=own) == Decision.DENY
    assert _evaluate(None, Operation.SELECT, "lead", pre={"created_by": P}) == Decision.DENY


def test_profile_role_changes_need_admin() -> None:
    assert policy_evaluator.evaluate_admin_fields(Role.USER, "user", ["full_name"]) == Decision.ALLOW
    assert policy_evaluator.evaluate_admin_fields(Role.USER, "user", ["role"]) == Decision.DENY
    assert policy_evaluator.evaluate_admin_fields(Role.FINANCE, "user", ["email", "role"]) == Decision.DENY
    assert policy_evaluator.evaluate_admin_fields(None, "user", ["role"]) == Decision.DENY
    assert policy_evaluator.evaluate_admin_fields(Role.ADMIN, "user", ["role"]) == Decision.ALLOW
    assert policy_evaluator.evaluate_admin_fields(Role.USER, "lead", ["role"]) == Decision.ALLOW


def test_insert_is_never_judged_on_a_pre_image() -> None:
    image = {"created_by": P}

    assert policy_evaluator.evaluate_phase(P, Role.USER, Operation.INSERT, "lead", image, GatePhase.PRE) == Decision.DENY


def test_unconfigured_policy_fails_closed_even_for_admin() -> None:
    evaluator = PolicyEvaluator(PolicyRegistry(MappingProxyType({})))
    before = REGISTRY.get_sample_value(
        "authz_unconfigured_policy_total",
        {"entity": "lead", "operation": "select"},
    ) or 0.0

    with pytest.raises(UnconfiguredPolicy):
        evaluator.evaluate(P, Role.ADMIN, Operation.SELECT, "lead", {"created_by": P})

    after = REGISTRY.get_sample_value("authz_unconfigured_policy_total", {"entity": "lead", "operation": "select"})
    assert after == before + 1
