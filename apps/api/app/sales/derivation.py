from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app import audit, events
from app.core.database import pinned
from app.metrics import observe_proposal_derivation
from app.platform.security.errors import NotFound
from app.sales.models import Deal, Proposal


logger = logging.getLogger("app.sales.derivation")


class ProposalDerivationService:
    """Materialize a draft proposal from an existing deal.

    Runs with system privilege: the new proposal inherits the deal's
    ownership instead of being checked against the caller's.
    """

    title_prefix = "Proposal for "

    def derive_proposal(self, session: Session, deal_id: Any, *, actor_id: str | None = None) -> uuid.UUID:
        try:
            key = deal_id if isinstance(deal_id, uuid.UUID) else uuid.UUID(str(deal_id))
        except ValueError:
            observe_proposal_derivation(outcome="not_found")
            raise NotFound("deal", deal_id) from None

        deal = session.scalar(pinned(select(Deal).where(Deal.id == key)))
        if deal is None:
            observe_proposal_derivation(outcome="not_found")
            raise NotFound("deal", deal_id)

        proposal = Proposal(
            id=uuid.uuid4(),
            deal_id=deal.id,
            title=f"{self.title_prefix}{deal.deal_name}",
            proposal_value=deal.deal_value,
            status="draft",
            created_by=deal.created_by,
            assigned_to=deal.deal_owner,
        )
        snapshot = {"deal_id": str(deal.id), "title": proposal.title, "status": proposal.status}
        try:
            session.add(proposal)
            session.flush()
            session.commit()
        except Exception:
            session.rollback()
            observe_proposal_derivation(outcome="failed")
            raise

        audit.record(
            actor_id=actor_id or audit.SYSTEM_ACTOR,
            entity_type="sales.proposal",
            entity_id=str(proposal.id),
            action="derive_from_deal",
            before=None,
            after=snapshot,
        )
        events.publish(
            "sales.proposal.derived",
            actor_id or audit.SYSTEM_ACTOR,
            {"proposal_id": str(proposal.id), "deal_id": snapshot["deal_id"]},
            system=True,
        )
        observe_proposal_derivation(outcome="created")
        logger.info("proposal.derived", extra={"deal_id": str(key), "proposal_id": str(proposal.id)})
        return proposal.id


proposal_derivation_service = ProposalDerivationService()
