from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field


ProfileRole = Literal["User", "Finance", "Admin"]
ProposalStatus = Literal["draft", "sent", "accepted", "rejected", "expired"]
DealStage = Literal["new", "qualified", "proposal_sent", "contract_sent", "closed_won", "closed_lost"]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")


class UserProfileCreate(_Payload):
    id: UUID
    email: EmailStr
    full_name: str | None = None
    role: ProfileRole = "User"


class UserProfileUpdate(_Payload):
    email: EmailStr | None = None
    full_name: str | None = None
    role: ProfileRole | None = None


class LeadCreate(_Payload):
    name: str = Field(min_length=1)
    email: EmailStr | None = None
    phone: str | None = None
    company: str | None = None
    status: str = "new"
    lead_source: str | None = None
    priority: str | None = None
    next_follow_up_date: date | None = None
    revenue_generated: Decimal = Decimal("0")
    cash_collected: Decimal = Decimal("0")
    assigned_to: UUID | None = None
    created_by: UUID | None = None


class LeadUpdate(_Payload):
    name: str | None = Field(default=None, min_length=1)
    email: EmailStr | None = None
    phone: str | None = None
    company: str | None = None
    status: str | None = None
    lead_source: str | None = None
    priority: str | None = None
    next_follow_up_date: date | None = None
    revenue_generated: Decimal | None = None
    cash_collected: Decimal | None = None
    assigned_to: UUID | None = None
    created_by: UUID | None = None


class DealCreate(_Payload):
    lead_id: UUID | None = None
    deal_name: str = Field(min_length=1)
    deal_value: Decimal = Decimal("0")
    stage: DealStage = "new"
    service_type: str | None = None
    deal_source: str | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    expected_close_date: date | None = None
    deal_owner: UUID | None = None
    created_by: UUID | None = None


class DealUpdate(_Payload):
    lead_id: UUID | None = None
    deal_name: str | None = Field(default=None, min_length=1)
    deal_value: Decimal | None = None
    stage: DealStage | None = None
    service_type: str | None = None
    deal_source: str | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    expected_close_date: date | None = None
    deal_owner: UUID | None = None
    created_by: UUID | None = None


class ProposalCreate(_Payload):
    deal_id: UUID | None = None
    title: str = Field(min_length=1)
    proposal_value: Decimal = Decimal("0")
    status: ProposalStatus = "draft"
    proposal_link: str | None = None
    sent_date: date | None = None
    expiration_date: date | None = None
    assigned_to: UUID | None = None
    created_by: UUID | None = None


class ProposalUpdate(_Payload):
    deal_id: UUID | None = None
    title: str | None = Field(default=None, min_length=1)
    proposal_value: Decimal | None = None
    status: ProposalStatus | None = None
    proposal_link: str | None = None
    sent_date: date | None = None
    expiration_date: date | None = None
    assigned_to: UUID | None = None
    created_by: UUID | None = None


class CloserReportCreate(_Payload):
    report_date: date
    closer_name: str = Field(min_length=1)
    calls_taken: int = Field(default=0, ge=0)
    deals_closed: int = Field(default=0, ge=0)
    revenue_generated: Decimal = Decimal("0")
    cash_collected: Decimal = Decimal("0")
    notes: str | None = None
    submitted_by: UUID | None = None


class CloserReportUpdate(_Payload):
    report_date: date | None = None
    closer_name: str | None = Field(default=None, min_length=1)
    calls_taken: int | None = Field(default=None, ge=0)
    deals_closed: int | None = Field(default=None, ge=0)
    revenue_generated: Decimal | None = None
    cash_collected: Decimal | None = None
    notes: str | None = None
    submitted_by: UUID | None = None


class SetterReportCreate(_Payload):
    report_date: date
    setter_name: str = Field(min_length=1)
    outbound_calls: int = Field(default=0, ge=0)
    conversations: int = Field(default=0, ge=0)
    appointments_set: int = Field(default=0, ge=0)
    notes: str | None = None
    submitted_by: UUID | None = None


class SetterReportUpdate(_Payload):
    report_date: date | None = None
    setter_name: str | None = Field(default=None, min_length=1)
    outbound_calls: int | None = Field(default=None, ge=0)
    conversations: int | None = Field(default=None, ge=0)
    appointments_set: int | None = Field(default=None, ge=0)
    notes: str | None = None
    submitted_by: UUID | None = None


class OfferCreate(_Payload):
    name: str = Field(min_length=1)
    price: Decimal = Decimal("0")
    description: str | None = None
    created_by: UUID | None = None


class OfferUpdate(_Payload):
    name: str | None = Field(default=None, min_length=1)
    price: Decimal | None = None
    description: str | None = None
    created_by: UUID | None = None


class CashEntryCreate(_Payload):
    entry_date: date
    client_email: EmailStr | None = None
    income: Decimal = Decimal("0")
    gross_profit: Decimal | None = None
    status: str = "pending"
    due_date: date | None = None
    payment_type: str | None = None
    setter_id: UUID | None = None
    offer_id: UUID | None = None
    created_by: UUID | None = None


class CashEntryUpdate(_Payload):
    entry_date: date | None = None
    client_email: EmailStr | None = None
    income: Decimal | None = None
    gross_profit: Decimal | None = None
    status: str | None = None
    due_date: date | None = None
    payment_type: str | None = None
    setter_id: UUID | None = None
    offer_id: UUID | None = None
    created_by: UUID | None = None


class ExpenseCreate(_Payload):
    expense_date: date
    expense_type: str = Field(min_length=1)
    amount: Decimal
    vendor: str | None = None
    invoice_filed: bool = False
    created_by: UUID | None = None


class ExpenseUpdate(_Payload):
    expense_date: date | None = None
    expense_type: str | None = Field(default=None, min_length=1)
    amount: Decimal | None = None
    vendor: str | None = None
    invoice_filed: bool | None = None
    created_by: UUID | None = None


class DerivedProposalRead(BaseModel):
    proposal_id: UUID
    deal_id: UUID


class PolicyRuleRead(BaseModel):
    entity: str
    entity_class: str
    operation: str
    predicate: str | None
    role: str | None
    fields: list[str]
    configured: bool
    admin_fields: list[str] = []
