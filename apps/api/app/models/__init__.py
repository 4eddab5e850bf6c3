from app.sales.models import (
	CashEntry,
	CloserReport,
	Deal,
	Expense,
	Lead,
	Offer,
	Proposal,
	SetterReport,
	UserProfile,
)

__all__ = [
	"CashEntry",
	"CloserReport",
	"Deal",
	"Expense",
	"Lead",
	"Offer",
	"Proposal",
	"SetterReport",
	"UserProfile",
]
