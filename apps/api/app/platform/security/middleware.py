from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, NoReturn, Protocol

from sqlalchemy import inspect, select
from sqlalchemy.orm import Session

from app import audit, events
from app.core.database import Base
from app.metrics import observe_authz_decision
from app.otel import get_tracer
from app.platform.security.context import AuthorizationContext
from app.platform.security.errors import (
    AuthorizationDenied,
    ForbiddenFieldError,
    NotFound,
    PrincipalNotFound,
    UnconfiguredPolicy,
    UnknownRole,
)
from app.platform.security.evaluator import (
    Decision,
    GatePhase,
    Image,
    PolicyEvaluator,
    policy_evaluator,
)
from app.platform.security.registry import Operation
from app.platform.security.resolver import RoleResolver, role_resolver
from app.platform.security.roles import Role
from app.sales.models import ENTITY_MODELS


logger = logging.getLogger("app.authz")
tracer = get_tracer("app.authz")

SYSTEM_COLUMNS = frozenset({"id", "created_at", "updated_at"})


class AppliedRule(Protocol):
    @property
    def rule(self) -> str:
        ...


class UpdateHook(Protocol):
    def after_update(self, session: Session, entity_type: str, pre_image: Image, post_image: Image) -> Sequence[AppliedRule]:
        ...

    def publish(self, derivations: Iterable[AppliedRule]) -> None:
        ...


def record_image(entity: Base) -> dict[str, Any]:
    """Column snapshot of a mapped row, used as a pre- or post-image."""

    return {column.key: getattr(entity, column.key) for column in inspect(entity).mapper.column_attrs}


class AuthorizationMiddleware:
    """Gate every data operation on a resolved role and a policy decision.

    Each public data operation is one unit of work on the supplied session:
    role resolution, evaluation, the mutation and any workflow cascade either
    all commit together or are rolled back together.
    """

    def __init__(
        self,
        *,
        resolver: RoleResolver | None = None,
        evaluator: PolicyEvaluator | None = None,
        workflow_engine: UpdateHook | None = None,
        models: Mapping[str, type[Base]] | None = None,
    ) -> None:
        self._resolver = resolver or role_resolver
        self._evaluator = evaluator or policy_evaluator
        self._workflow_engine = workflow_engine
        self._models = models or ENTITY_MODELS

    def open_context(self, principal_id: Any, correlation_id: str | None = None) -> AuthorizationContext:
        return AuthorizationContext(principal_id=str(principal_id), correlation_id=correlation_id)

    def resolve_role(self, session: Session, ctx: AuthorizationContext) -> Role:
        return self._resolver.resolve(session, ctx)

    def authorize(
        self,
        session: Session,
        ctx: AuthorizationContext,
        operation: Operation,
        entity_type: str,
        pre_image: Image | None = None,
        post_image: Image | None = None,
    ) -> Decision:
        """Decide without touching storage.

        A principal without a profile is judged with no role, which only the
        self-only rule on insert can admit. An unknown stored role is denied.
        """

        try:
            role: Role | None = self._resolver.resolve(session, ctx)
        except PrincipalNotFound:
            role = None
        except UnknownRole as exc:
            self._log_decision(ctx, entity_type, operation, Decision.DENY, None, reason=type(exc).__name__)
            return Decision.DENY

        decision = self._evaluator.evaluate(ctx.principal_id, role, operation, entity_type, pre_image, post_image)
        self._log_decision(ctx, entity_type, operation, decision, role)
        return decision

    def list_records(
        self,
        session: Session,
        ctx: AuthorizationContext,
        entity_type: str,
        *,
        filters: Mapping[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Any]:
        model = self._model(entity_type)
        with self._unit_of_work(session, ctx, Operation.SELECT, entity_type):
            role = self._role_or_deny(session, ctx, Operation.SELECT, entity_type)
            stmt = select(model)
            for key, value in (filters or {}).items():
                if value is None:
                    continue
                if key not in self._writable_columns(model):
                    raise ForbiddenFieldError(entity_type, [key])
                stmt = stmt.where(getattr(model, key) == _coerce_filter(model, entity_type, key, value))
            rows = session.scalars(stmt.order_by(model.created_at.desc()).offset(offset).limit(limit)).all()
            visible = [
                row
                for row in rows
                if self._gate(ctx, role, Operation.SELECT, entity_type, record_image(row), GatePhase.PRE, raise_on_deny=False)
            ]
        return visible

    def get_record(self, session: Session, ctx: AuthorizationContext, entity_type: str, record_id: Any) -> Any:
        model = self._model(entity_type)
        with self._unit_of_work(session, ctx, Operation.SELECT, entity_type):
            role = self._role_or_deny(session, ctx, Operation.SELECT, entity_type)
            row = self._load(session, model, entity_type, record_id)
            self._gate(ctx, role, Operation.SELECT, entity_type, record_image(row), GatePhase.PRE)
        return row

    def insert(self, session: Session, ctx: AuthorizationContext, entity_type: str, values: Mapping[str, Any]) -> Any:
        model = self._model(entity_type)
        self._validate_fields(model, entity_type, values, allow_id=True)
        with self._unit_of_work(session, ctx, Operation.INSERT, entity_type):
            role = self._role_or_deny(session, ctx, Operation.INSERT, entity_type)
            row = model(**values)
            if getattr(row, "id", None) is None:
                row.id = uuid.uuid4()
            post_image = record_image(row)
            self._gate(ctx, role, Operation.INSERT, entity_type, post_image, GatePhase.POST)
            self._gate_admin_fields(
                ctx, role, Operation.INSERT, entity_type, _non_default_fields(model, values), entity_id=row.id
            )

            session.add(row)
            session.flush()
            after = record_image(row)
            session.commit()

        audit.record(
            actor_id=ctx.principal_id,
            entity_type=f"sales.{entity_type}",
            entity_id=str(after["id"]),
            action="create",
            before=None,
            after=_jsonable(after),
            correlation_id=ctx.correlation_id,
        )
        events.publish(f"sales.{entity_type}.created", ctx.principal_id, {"id": str(after["id"])})
        return row

    def update(
        self,
        session: Session,
        ctx: AuthorizationContext,
        entity_type: str,
        record_id: Any,
        changes: Mapping[str, Any],
    ) -> Any:
        model = self._model(entity_type)
        self._validate_fields(model, entity_type, changes, allow_id=False)
        with self._unit_of_work(session, ctx, Operation.UPDATE, entity_type):
            role = self._role_or_deny(session, ctx, Operation.UPDATE, entity_type)
            row = self._load(session, model, entity_type, record_id, for_update=True)

            pre_image = record_image(row)
            self._gate(ctx, role, Operation.UPDATE, entity_type, pre_image, GatePhase.PRE, entity_id=record_id)

            for key, value in changes.items():
                setattr(row, key, value)
            post_image = record_image(row)
            self._gate(ctx, role, Operation.UPDATE, entity_type, post_image, GatePhase.POST, entity_id=record_id)
            changed = [key for key in changes if pre_image.get(key) != post_image.get(key)]
            self._gate_admin_fields(ctx, role, Operation.UPDATE, entity_type, changed, entity_id=record_id)

            session.flush()
            derived: Sequence[AppliedRule] = []
            if self._workflow_engine is not None:
                derived = self._workflow_engine.after_update(session, entity_type, pre_image, post_image)
            after = record_image(row)
            session.commit()

        audit.record(
            actor_id=ctx.principal_id,
            entity_type=f"sales.{entity_type}",
            entity_id=str(after["id"]),
            action="update",
            before=_jsonable(pre_image),
            after=_jsonable(after),
            correlation_id=ctx.correlation_id,
        )
        events.publish(
            f"sales.{entity_type}.updated",
            ctx.principal_id,
            {"id": str(after["id"]), "changed": sorted(changes), "derived": [item.rule for item in derived]},
        )
        if derived and self._workflow_engine is not None:
            self._workflow_engine.publish(derived)
        return row

    def delete(self, session: Session, ctx: AuthorizationContext, entity_type: str, record_id: Any) -> None:
        model = self._model(entity_type)
        with self._unit_of_work(session, ctx, Operation.DELETE, entity_type):
            role = self._role_or_deny(session, ctx, Operation.DELETE, entity_type)
            row = self._load(session, model, entity_type, record_id, for_update=True)
            pre_image = record_image(row)
            self._gate(ctx, role, Operation.DELETE, entity_type, pre_image, GatePhase.PRE, entity_id=record_id)

            session.delete(row)
            session.flush()
            session.commit()

        audit.record(
            actor_id=ctx.principal_id,
            entity_type=f"sales.{entity_type}",
            entity_id=str(pre_image["id"]),
            action="delete",
            before=_jsonable(pre_image),
            after=None,
            correlation_id=ctx.correlation_id,
        )
        events.publish(f"sales.{entity_type}.deleted", ctx.principal_id, {"id": str(pre_image["id"])})

    @contextmanager
    def _unit_of_work(
        self,
        session: Session,
        ctx: AuthorizationContext,
        operation: Operation,
        entity_type: str,
    ) -> Iterator[None]:
        with tracer.start_as_current_span(f"authz.{operation.value}") as span:
            span.set_attribute("authz.entity", entity_type)
            span.set_attribute("authz.principal_id", ctx.principal_id)
            try:
                yield
            except Exception as exc:
                session.rollback()
                span.set_attribute("authz.outcome", type(exc).__name__)
                if isinstance(exc, UnconfiguredPolicy):
                    logger.error(
                        "authz.unconfigured_policy",
                        extra={"entity": entity_type, "operation": operation.value, "error": str(exc)},
                    )
                raise
            span.set_attribute("authz.outcome", "ok")

    def _role_or_deny(
        self,
        session: Session,
        ctx: AuthorizationContext,
        operation: Operation,
        entity_type: str,
    ) -> Role | None:
        # Fail closed on configuration before spending a lookup on the principal.
        rule = self._evaluator.rule_for(entity_type, operation)
        try:
            return self._resolver.resolve(session, ctx)
        except PrincipalNotFound as exc:
            if self._evaluator.admits_unresolved(rule, operation):
                # Creating one's own profile; the self-only predicate decides.
                logger.info(
                    "authz.unresolved_principal",
                    extra={"entity": entity_type, "operation": operation.value, "reason": type(exc).__name__},
                )
                return None
            self._deny_unresolved(ctx, entity_type, operation, exc)
        except UnknownRole as exc:
            self._deny_unresolved(ctx, entity_type, operation, exc)

    def _deny_unresolved(
        self,
        ctx: AuthorizationContext,
        entity_type: str,
        operation: Operation,
        exc: Exception,
    ) -> NoReturn:
        reason = type(exc).__name__
        self._log_decision(ctx, entity_type, operation, Decision.DENY, None, reason=reason)
        self._record_denial(ctx, entity_type, operation, None, reason, None)
        raise AuthorizationDenied(entity_type, operation.value, reason=reason) from exc

    def _gate_admin_fields(
        self,
        ctx: AuthorizationContext,
        role: Role | None,
        operation: Operation,
        entity_type: str,
        touched: Iterable[str],
        *,
        entity_id: Any = None,
    ) -> None:
        touched = list(touched)
        if self._evaluator.evaluate_admin_fields(role, entity_type, touched) == Decision.ALLOW:
            return
        self._log_decision(ctx, entity_type, operation, Decision.DENY, role, phase=GatePhase.POST, reason="admin_field")
        self._record_denial(ctx, entity_type, operation, GatePhase.POST, "admin_field", entity_id)
        raise AuthorizationDenied(
            entity_type,
            operation.value,
            phase=GatePhase.POST.value,
            reason="admin_field",
            entity_id=entity_id,
        )

    def _gate(
        self,
        ctx: AuthorizationContext,
        role: Role | None,
        operation: Operation,
        entity_type: str,
        image: Image,
        phase: GatePhase,
        *,
        entity_id: Any = None,
        raise_on_deny: bool = True,
    ) -> bool:
        decision = self._evaluator.evaluate_phase(ctx.principal_id, role, operation, entity_type, image, phase)
        if operation != Operation.SELECT or decision == Decision.DENY:
            self._log_decision(ctx, entity_type, operation, decision, role, phase=phase)
        else:
            observe_authz_decision(entity=entity_type, operation=operation.value, decision=decision.value)
        if decision == Decision.ALLOW:
            return True
        if not raise_on_deny:
            return False
        resolved_id = entity_id if entity_id is not None else image.get("id")
        self._record_denial(ctx, entity_type, operation, phase, "policy", resolved_id)
        raise AuthorizationDenied(entity_type, operation.value, phase=phase.value, entity_id=resolved_id)

    def _load(self, session: Session, model: type[Base], entity_type: str, record_id: Any, *, for_update: bool = False) -> Any:
        try:
            key = record_id if isinstance(record_id, uuid.UUID) else uuid.UUID(str(record_id))
        except ValueError:
            raise NotFound(entity_type, record_id) from None
        stmt = select(model).where(model.id == key)
        if for_update:
            stmt = stmt.with_for_update()
        row = session.scalar(stmt)
        if row is None:
            raise NotFound(entity_type, record_id)
        return row

    def _model(self, entity_type: str) -> type[Base]:
        model = self._models.get(entity_type)
        if model is None:
            raise UnconfiguredPolicy(entity_type, "*")
        return model

    @staticmethod
    def _writable_columns(model: type[Base]) -> set[str]:
        return {column.key for column in inspect(model).column_attrs} - SYSTEM_COLUMNS

    def _validate_fields(self, model: type[Base], entity_type: str, payload: Mapping[str, Any], *, allow_id: bool) -> None:
        writable = self._writable_columns(model)
        if allow_id:
            writable = writable | {"id"}
        denied = [key for key in payload if key not in writable]
        if denied:
            raise ForbiddenFieldError(entity_type, denied)

    def _log_decision(
        self,
        ctx: AuthorizationContext,
        entity_type: str,
        operation: Operation,
        decision: Decision,
        role: Role | None,
        *,
        phase: GatePhase | None = None,
        reason: str | None = None,
    ) -> None:
        observe_authz_decision(entity=entity_type, operation=operation.value, decision=decision.value)
        level = logging.INFO if decision == Decision.ALLOW else logging.WARNING
        logger.log(
            level,
            "authz.decision",
            extra={
                "entity": entity_type,
                "operation": operation.value,
                "decision": decision.value,
                "phase": phase.value if phase is not None else None,
                "role": role.value if role is not None else None,
                "reason": reason,
            },
        )

    def _record_denial(
        self,
        ctx: AuthorizationContext,
        entity_type: str,
        operation: Operation,
        phase: GatePhase | None,
        reason: str,
        entity_id: Any,
    ) -> None:
        audit.record(
            actor_id=ctx.principal_id,
            entity_type="security.authz",
            entity_id=str(entity_id) if entity_id is not None else "unknown",
            action="authz.denied",
            before=None,
            after={
                "entity": entity_type,
                "operation": operation.value,
                "phase": phase.value if phase is not None else None,
                "reason": reason,
            },
            correlation_id=ctx.correlation_id,
        )


def _jsonable(image: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value if value is None or isinstance(value, (bool, int, str)) else str(value) for key, value in image.items()}


def _non_default_fields(model: type[Base], values: Mapping[str, Any]) -> list[str]:
    """Keys of an insert payload that set a column to something other than its default."""

    columns = inspect(model).columns
    touched = []
    for key, value in values.items():
        default = columns[key].default if key in columns else None
        if default is not None and default.is_scalar and default.arg == value:
            continue
        if default is None and value is None:
            continue
        touched.append(key)
    return touched


def _coerce_filter(model: type[Base], entity_type: str, key: str, value: Any) -> Any:
    """Query-string filters arrive as text; convert them for typed columns."""

    if not isinstance(value, str):
        return value
    python_type = inspect(model).columns[key].type.python_type
    try:
        if python_type is uuid.UUID:
            return uuid.UUID(value)
        if python_type is bool:
            return value.lower() in {"1", "true", "yes"}
        # datetime subclasses date, so it is matched first.
        if python_type is datetime:
            return datetime.fromisoformat(value)
        if python_type is date:
            return date.fromisoformat(value)
        if python_type is Decimal:
            return Decimal(value)
        if python_type is int:
            return int(value)
    except (ValueError, InvalidOperation):
        raise ForbiddenFieldError(entity_type, [key]) from None
    return value
