from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import update
from sqlalchemy.orm import Session

from app import audit, events
from app.core.config import get_settings
from app.core.database import pinned
from app.metrics import observe_workflow_cascade_failure, observe_workflow_derivation
from app.sales.errors import CascadeTargetMissing
from app.sales.models import Deal


logger = logging.getLogger("app.sales.workflow")

Image = Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class TransitionContext:
    session: Session
    entity_type: str
    field: str
    old_value: Any
    new_value: Any
    pre_image: Image
    post_image: Image


@dataclass(frozen=True, slots=True)
class Derivation:
    """A deal change applied by a hook, announced once the unit of work commits."""

    rule: str
    deal_id: Any
    proposal_id: Any
    values: Mapping[str, Any]
    old_value: Any


# Returns the applied derivation, or None when the hook declined.
TransitionHook = Callable[[TransitionContext], Derivation | None]

PROPOSAL_SENT_RULE = "proposal.sent->deal.proposal_sent"
PROPOSAL_ACCEPTED_RULE = "proposal.accepted->deal.contract_sent"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowEngine:
    """Post-mutation hooks keyed on (entity type, watched field).

    Hooks run synchronously on the caller's session, after the triggering row
    has been flushed and before commit. Any hook failure propagates so the
    caller rolls back the whole unit of work. Audit entries and events for the
    applied derivations are emitted by ``publish`` once the caller committed.
    """

    def __init__(self) -> None:
        self._hooks: dict[tuple[str, str], list[TransitionHook]] = defaultdict(list)

    def register(self, entity_type: str, field: str, hook: TransitionHook) -> None:
        hooks = self._hooks[(entity_type, field)]
        if hook not in hooks:
            hooks.append(hook)

    def watched_fields(self, entity_type: str) -> list[str]:
        return sorted(field for (watched_type, field), hooks in self._hooks.items() if watched_type == entity_type and hooks)

    def after_update(self, session: Session, entity_type: str, pre_image: Image, post_image: Image) -> list[Derivation]:
        applied: list[Derivation] = []
        for field in self.watched_fields(entity_type):
            if field not in post_image:
                continue
            transition = TransitionContext(
                session=session,
                entity_type=entity_type,
                field=field,
                old_value=pre_image.get(field),
                new_value=post_image.get(field),
                pre_image=pre_image,
                post_image=post_image,
            )
            for hook in self._hooks[(entity_type, field)]:
                derivation = hook(transition)
                if derivation is not None:
                    applied.append(derivation)
        return applied

    def publish(self, derivations: Iterable[Derivation]) -> None:
        for derivation in derivations:
            deal_id = str(derivation.deal_id)
            observe_workflow_derivation(rule=derivation.rule)
            logger.info(
                "workflow.derived",
                extra={"rule": derivation.rule, "deal_id": deal_id, "proposal_id": str(derivation.proposal_id)},
            )
            audit.record(
                actor_id=audit.SYSTEM_ACTOR,
                entity_type="sales.deal",
                entity_id=deal_id,
                action="workflow.stage_derived",
                before={"proposal_status": derivation.old_value},
                after={key: str(value) for key, value in derivation.values.items()},
            )
            events.publish(
                "sales.deal.stage_derived",
                audit.SYSTEM_ACTOR,
                {
                    "deal_id": deal_id,
                    "proposal_id": str(derivation.proposal_id),
                    "rule": derivation.rule,
                    "stage": derivation.values["stage"],
                },
                system=True,
            )


def _set_deal_stage(transition: TransitionContext, rule: str, values: dict[str, Any]) -> Derivation:
    deal_id = transition.post_image.get("deal_id")
    if deal_id is None:
        observe_workflow_cascade_failure(rule=rule, reason="no_deal_reference")
        raise CascadeTargetMissing(rule, "deal", None)

    result = transition.session.execute(pinned(update(Deal).where(Deal.id == deal_id).values(**values)))
    if result.rowcount == 0:
        observe_workflow_cascade_failure(rule=rule, reason="deal_missing")
        logger.error("workflow.cascade_target_missing", extra={"rule": rule, "deal_id": str(deal_id)})
        raise CascadeTargetMissing(rule, "deal", deal_id)

    return Derivation(
        rule=rule,
        deal_id=deal_id,
        proposal_id=transition.post_image.get("id"),
        values=values,
        old_value=transition.old_value,
    )


def proposal_sent_rule(transition: TransitionContext) -> Derivation | None:
    if transition.new_value != "sent" or transition.old_value == "sent":
        return None
    return _set_deal_stage(transition, PROPOSAL_SENT_RULE, {"stage": "proposal_sent"})


def proposal_accepted_rule(transition: TransitionContext) -> Derivation | None:
    if transition.new_value != "accepted":
        return None
    if transition.old_value == "accepted" and not get_settings().workflow_restamp_accepted_close_date:
        return None
    return _set_deal_stage(
        transition,
        PROPOSAL_ACCEPTED_RULE,
        {"stage": "contract_sent", "actual_close_date": utcnow()},
    )


def build_workflow_engine() -> WorkflowEngine:
    engine = WorkflowEngine()
    engine.register("proposal", "status", proposal_sent_rule)
    engine.register("proposal", "status", proposal_accepted_rule)
    return engine


workflow_engine = build_workflow_engine()
