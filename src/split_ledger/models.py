"""Pydantic domain models for split-ledger."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .money import from_cents

# ============================================================================
# Ledger entities
# ============================================================================


class Member(BaseModel):
    """A person who can pay for and share expenses."""

    id: int
    name: str
    email: str


class Group(BaseModel):
    """A group of members sharing expenses."""

    id: int
    name: str
    description: str | None = None
    created_by: int
    member_ids: list[int]
    created_at: datetime = Field(default_factory=datetime.now)


class Split(BaseModel):
    """One member's share of an expense."""

    member_id: int
    amount_cents: int = Field(ge=0)


class Settlement(BaseModel):
    """A real-world payment applied against one expense."""

    id: int | None = None
    expense_id: int
    member_id: int
    amount_cents: int = Field(gt=0)
    settled_at: datetime = Field(default_factory=datetime.now)


class Expense(BaseModel):
    """An expense with its splits, as consumed by the balance aggregator."""

    id: int
    group_id: int
    title: str
    amount_cents: int = Field(gt=0)
    paid_by: int
    settled: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    splits: list[Split]

    @property
    def amount(self) -> Decimal:
        """Expense amount as a two-place Decimal."""
        return from_cents(self.amount_cents)


# ============================================================================
# Views returned to callers
# ============================================================================


class SplitView(BaseModel):
    """A split with the member resolved."""

    member: Member
    amount_cents: int


class SettlementView(BaseModel):
    """A settlement row with the paying member resolved."""

    id: int
    member: Member
    amount_cents: int
    settled_at: datetime


class ExpenseView(BaseModel):
    """The full current state of an expense.

    ``settled`` is the cached flag; ``total_settled_cents`` is the sum it is
    derived from. The two always agree after a write.
    """

    id: int
    title: str
    amount_cents: int
    group_id: int
    group_name: str
    paid_by: Member
    settled: bool
    created_at: datetime
    splits: list[SplitView]
    settlements: list[SettlementView]

    @property
    def total_settled_cents(self) -> int:
        """Sum of all settlement payments."""
        return sum(s.amount_cents for s in self.settlements)

    @property
    def outstanding_cents(self) -> int:
        """Amount still to be paid back, never negative."""
        return max(self.amount_cents - self.total_settled_cents, 0)


class MemberBalance(BaseModel):
    """A member's net position in a group (positive = is owed)."""

    member: Member
    balance: Decimal


class Transfer(BaseModel):
    """A suggested payment from a debtor to a creditor, in cents."""

    model_config = ConfigDict(frozen=True)

    from_member_id: int
    to_member_id: int
    amount_cents: int = Field(gt=0)


class SuggestedTransfer(BaseModel):
    """A transfer with both members resolved, for display."""

    from_member: Member
    to_member: Member
    amount: Decimal
