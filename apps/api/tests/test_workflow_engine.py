from __future__ import annotations

import uuid
from collections.abc import Generator
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app import audit, events
from app.core.config import get_settings
from app.core.database import Base
from app.platform.security.middleware import AuthorizationMiddleware
from app.sales.errors import CascadeTargetMissing
from app.sales.models import Deal, Proposal, UserProfile
from app.sales.workflow import (
    PROPOSAL_ACCEPTED_RULE,
    PROPOSAL_SENT_RULE,
    Derivation,
    WorkflowEngine,
    build_workflow_engine,
)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clear_stubs() -> Generator[None, None, None]:
    audit.audit_entries.clear()
    events.published_events.clear()
    get_settings.cache_clear()
    yield
    audit.audit_entries.clear()
    events.published_events.clear()
    get_settings.cache_clear()


@pytest.fixture()
def middleware() -> AuthorizationMiddleware:
    return AuthorizationMiddleware(workflow_engine=build_workflow_engine())


@pytest.fixture()
def owner_id(db_session: Session) -> str:
    profile = UserProfile(id=uuid.uuid4(), email="owner@example.com", role="User")
    db_session.add(profile)
    db_session.commit()
    return str(profile.id)


def _deal_with_proposal(session: Session, owner_id: str, *, status: str = "draft") -> tuple[Deal, Proposal]:
    owner = uuid.UUID(owner_id)
    deal = Deal(id=uuid.uuid4(), deal_name="Website Rebuild", deal_value=Decimal("9000"), created_by=owner, deal_owner=owner)
    proposal = Proposal(id=uuid.uuid4(), deal_id=deal.id, title="Proposal", status=status, created_by=owner, assigned_to=owner)
    session.add(deal)
    session.flush()
    session.add(proposal)
    session.commit()
    return deal, proposal


def _stage_events(rule: str) -> list[dict]:
    return [item for item in events.events_of_type("sales.deal.stage_derived") if item["payload"]["rule"] == rule]


def test_sent_transition_fires_once(db_session: Session, middleware: AuthorizationMiddleware, owner_id: str) -> None:
    deal, proposal = _deal_with_proposal(db_session, owner_id)

    middleware.update(db_session, middleware.open_context(owner_id), "proposal", proposal.id, {"status": "sent"})
    db_session.refresh(deal)
    assert deal.stage == "proposal_sent"
    assert len(_stage_events(PROPOSAL_SENT_RULE)) == 1

    middleware.update(db_session, middleware.open_context(owner_id), "proposal", proposal.id, {"status": "sent", "title": "v2"})
    assert len(_stage_events(PROPOSAL_SENT_RULE)) == 1

    updated = events.events_of_type("sales.proposal.updated")
    assert updated[0]["payload"]["derived"] == [PROPOSAL_SENT_RULE]
    assert updated[1]["payload"]["derived"] == []
    derived_event = _stage_events(PROPOSAL_SENT_RULE)[0]
    assert derived_event["meta"] == {"system": True}
    assert derived_event["actor_id"] == audit.SYSTEM_ACTOR


def test_accepted_restamps_close_date_on_no_op_save(
    db_session: Session,
    middleware: AuthorizationMiddleware,
    owner_id: str,
) -> None:
    deal, proposal = _deal_with_proposal(db_session, owner_id, status="sent")

    middleware.update(db_session, middleware.open_context(owner_id), "proposal", proposal.id, {"status": "accepted"})
    db_session.refresh(deal)
    assert deal.stage == "contract_sent"
    first_close = deal.actual_close_date
    assert first_close is not None

    # Observed behaviour: a save that leaves the status at accepted derives again.
    middleware.update(db_session, middleware.open_context(owner_id), "proposal", proposal.id, {"status": "accepted"})
    db_session.refresh(deal)
    assert len(_stage_events(PROPOSAL_ACCEPTED_RULE)) == 2
    assert deal.actual_close_date >= first_close


def test_accepted_is_idempotent_when_restamp_disabled(
    db_session: Session,
    middleware: AuthorizationMiddleware,
    owner_id: str,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("WORKFLOW_RESTAMP_ACCEPTED_CLOSE_DATE", "false")
    get_settings.cache_clear()
    deal, proposal = _deal_with_proposal(db_session, owner_id, status="sent")

    middleware.update(db_session, middleware.open_context(owner_id), "proposal", proposal.id, {"status": "accepted"})
    db_session.refresh(deal)
    first_close = deal.actual_close_date

    middleware.update(db_session, middleware.open_context(owner_id), "proposal", proposal.id, {"status": "accepted"})
    db_session.refresh(deal)

    assert len(_stage_events(PROPOSAL_ACCEPTED_RULE)) == 1
    assert deal.actual_close_date == first_close


def test_missing_deal_aborts_the_proposal_update(
    db_session: Session,
    middleware: AuthorizationMiddleware,
    owner_id: str,
) -> None:
    owner = uuid.UUID(owner_id)
    orphan = Proposal(id=uuid.uuid4(), deal_id=uuid.uuid4(), title="Orphan", status="draft", created_by=owner)
    db_session.add(orphan)
    db_session.commit()

    with pytest.raises(CascadeTargetMissing) as exc_info:
        middleware.update(db_session, middleware.open_context(owner_id), "proposal", orphan.id, {"status": "sent"})

    assert exc_info.value.rule == PROPOSAL_SENT_RULE
    reloaded = db_session.get(Proposal, orphan.id)
    assert reloaded is not None and reloaded.status == "draft"
    assert events.events_of_type("sales.proposal.updated") == []
    assert audit.entries_for("sales.proposal", "update") == []


def test_proposal_without_deal_cannot_be_sent(
    db_session: Session,
    middleware: AuthorizationMiddleware,
    owner_id: str,
) -> None:
    loose = Proposal(id=uuid.uuid4(), deal_id=None, title="Loose", status="draft", created_by=uuid.UUID(owner_id))
    db_session.add(loose)
    db_session.commit()

    with pytest.raises(CascadeTargetMissing):
        middleware.update(db_session, middleware.open_context(owner_id), "proposal", loose.id, {"status": "sent"})

    middleware.update(db_session, middleware.open_context(owner_id), "proposal", loose.id, {"title": "Loose v2"})
    assert db_session.get(Proposal, loose.id).title == "Loose v2"


def test_engine_runs_registered_hooks_once_per_field() -> None:
    engine = WorkflowEngine()
    seen: list[tuple[object, object]] = []
    derivation = Derivation(rule="custom.rule", deal_id="d-1", proposal_id=None, values={"stage": "qualified"}, old_value="new")

    def hook(transition):  # type: ignore[no-untyped-def]
        seen.append((transition.old_value, transition.new_value))
        return derivation

    engine.register("deal", "stage", hook)
    engine.register("deal", "stage", hook)

    applied = engine.after_update(None, "deal", {"stage": "new"}, {"stage": "qualified"})  # type: ignore[arg-type]

    assert engine.watched_fields("deal") == ["stage"]
    assert engine.watched_fields("lead") == []
    assert applied == [derivation]
    assert seen == [("new", "qualified")]
    # Nothing is announced until the caller publishes after its commit.
    assert events.published_events == []
    assert audit.audit_entries == []

    engine.publish(applied)

    assert events.events_of_type("sales.deal.stage_derived")[0]["payload"] == {
        "deal_id": "d-1",
        "proposal_id": "None",
        "rule": "custom.rule",
        "stage": "qualified",
    }
    assert audit.entries_for("sales.deal", "workflow.stage_derived")[0]["before"] == {"proposal_status": "new"}


def test_derivation_is_not_announced_when_commit_fails(
    db_session: Session,
    middleware: AuthorizationMiddleware,
    owner_id: str,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    deal, proposal = _deal_with_proposal(db_session, owner_id)

    def failing_commit() -> None:
        raise RuntimeError("commit failed")

    monkeypatch.setattr(db_session, "commit", failing_commit)

    with pytest.raises(RuntimeError):
        middleware.update(db_session, middleware.open_context(owner_id), "proposal", proposal.id, {"status": "sent"})

    assert _stage_events(PROPOSAL_SENT_RULE) == []
    assert audit.entries_for("sales.deal", "workflow.stage_derived") == []
    assert events.events_of_type("sales.proposal.updated") == []
    assert db_session.get(Deal, deal.id).stage == "new"
