from app.sales.errors import CascadeTargetMissing, WorkflowError
from app.sales.models import ENTITY_MODELS, CashEntry, CloserReport, Deal, Expense, Lead, Offer, Proposal, SetterReport, UserProfile

__all__ = [
    "CascadeTargetMissing",
    "CashEntry",
    "CloserReport",
    "Deal",
    "ENTITY_MODELS",
    "Expense",
    "Lead",
    "Offer",
    "Proposal",
    "SetterReport",
    "UserProfile",
    "WorkflowError",
]
