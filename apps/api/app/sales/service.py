from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.platform.security.context import AuthorizationContext
from app.platform.security.middleware import AuthorizationMiddleware, record_image
from app.sales import schemas
from app.sales.workflow import WorkflowEngine, workflow_engine


@dataclass(frozen=True, slots=True)
class Collection:
    entity_type: str
    create_schema: type[BaseModel]
    update_schema: type[BaseModel]


COLLECTIONS: dict[str, Collection] = {
    "users": Collection("user", schemas.UserProfileCreate, schemas.UserProfileUpdate),
    "leads": Collection("lead", schemas.LeadCreate, schemas.LeadUpdate),
    "deals": Collection("deal", schemas.DealCreate, schemas.DealUpdate),
    "proposals": Collection("proposal", schemas.ProposalCreate, schemas.ProposalUpdate),
    "closer-reports": Collection("closer_report", schemas.CloserReportCreate, schemas.CloserReportUpdate),
    "setter-reports": Collection("setter_report", schemas.SetterReportCreate, schemas.SetterReportUpdate),
    "offers": Collection("offer", schemas.OfferCreate, schemas.OfferUpdate),
    "cash-entries": Collection("cash_entry", schemas.CashEntryCreate, schemas.CashEntryUpdate),
    "expenses": Collection("expense", schemas.ExpenseCreate, schemas.ExpenseUpdate),
}


class SalesRecordService:
    """Schema-validated CRUD over the sales entities, routed through authorization."""

    def __init__(self, middleware: AuthorizationMiddleware) -> None:
        self._middleware = middleware

    def list_records(
        self,
        session: Session,
        ctx: AuthorizationContext,
        collection: Collection,
        filters: dict[str, Any],
        limit: int,
        offset: int,
    ) -> list[dict[str, Any]]:
        rows = self._middleware.list_records(
            session,
            ctx,
            collection.entity_type,
            filters=filters,
            limit=limit,
            offset=offset,
        )
        return [record_image(row) for row in rows]

    def get_record(self, session: Session, ctx: AuthorizationContext, collection: Collection, record_id: Any) -> dict[str, Any]:
        return record_image(self._middleware.get_record(session, ctx, collection.entity_type, record_id))

    def create_record(
        self,
        session: Session,
        ctx: AuthorizationContext,
        collection: Collection,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        dto = collection.create_schema.model_validate(payload)
        row = self._middleware.insert(session, ctx, collection.entity_type, dto.model_dump())
        return record_image(row)

    def update_record(
        self,
        session: Session,
        ctx: AuthorizationContext,
        collection: Collection,
        record_id: Any,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        dto = collection.update_schema.model_validate(payload)
        changes = dto.model_dump(exclude_unset=True)
        row = self._middleware.update(session, ctx, collection.entity_type, record_id, changes)
        return record_image(row)

    def delete_record(self, session: Session, ctx: AuthorizationContext, collection: Collection, record_id: Any) -> None:
        self._middleware.delete(session, ctx, collection.entity_type, record_id)


def build_authorization_middleware(engine: WorkflowEngine | None = None) -> AuthorizationMiddleware:
    return AuthorizationMiddleware(workflow_engine=engine or workflow_engine)


authorization_middleware = build_authorization_middleware()
sales_record_service = SalesRecordService(authorization_middleware)
