"""split-ledger - Shared expenses, net balances and debt simplification."""

__version__ = "0.1.0"

from .balances import compute_balances
from .config import Settings, load_settings
from .db import Database
from .exceptions import (
    IntegrityError,
    NotFoundError,
    SplitLedgerError,
    ValidationError,
)
from .matcher import simplify
from .models import (
    Expense,
    ExpenseView,
    Group,
    Member,
    MemberBalance,
    Settlement,
    Split,
    SuggestedTransfer,
    Transfer,
)
from .recorder import record_settlement
from .service import LedgerService

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "IntegrityError",
    "NotFoundError",
    "SplitLedgerError",
    "ValidationError",
    "Expense",
    "ExpenseView",
    "Group",
    "Member",
    "MemberBalance",
    "Settlement",
    "Split",
    "SuggestedTransfer",
    "Transfer",
    "compute_balances",
    "simplify",
    "record_settlement",
    "LedgerService",
]
