"""Service layer that composes the ledger store and the settlement engine.

This module provides the operations exposed by the CLI and MCP server:
balances, suggested settlements and settling an expense, plus the member,
group and expense bookkeeping around them.
"""

import logging
from collections.abc import Sequence
from decimal import Decimal

from .balances import compute_balances
from .config import Settings
from .db import Database
from .exceptions import NotFoundError, ValidationError
from .matcher import simplify
from .models import (
    ExpenseView,
    Group,
    Member,
    MemberBalance,
    Split,
    SuggestedTransfer,
)
from .money import from_cents, parse_amount
from .recorder import record_settlement
from .splits import reconcile_splits, split_evenly

logger = logging.getLogger(__name__)

AmountInput = Decimal | str | int


class LedgerService:
    """Service for recording shared expenses and working out who owes whom."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the ledger service."""
        self.settings = settings
        self.db = database

    @property
    def tolerance_cents(self) -> int:
        return self.settings.tolerance_cents

    # ========================================================================
    # Members
    # ========================================================================

    def create_member(self, name: str, email: str) -> Member:
        """Register a new member."""
        name, email = name.strip(), email.strip().lower()
        if not name:
            raise ValidationError("Member name must not be empty")
        if "@" not in email:
            raise ValidationError(f"Invalid email address: {email!r}")

        member = self.db.create_member(name, email)
        logger.info(f"Created member {member.id} ({member.name})")
        return member

    def update_member(
        self, member_id: int, name: str | None = None, email: str | None = None
    ) -> Member:
        """Update a member's details. Historical balances are unaffected."""
        if email is not None:
            email = email.strip().lower()
            if "@" not in email:
                raise ValidationError(f"Invalid email address: {email!r}")
        if name is not None and not name.strip():
            raise ValidationError("Member name must not be empty")

        member = self.db.update_member(
            member_id, name=name.strip() if name else None, email=email
        )
        if member is None:
            raise NotFoundError("member", member_id)
        return member

    def get_member(self, member_id: int) -> Member:
        member = self.db.get_member(member_id)
        if member is None:
            raise NotFoundError("member", member_id)
        return member

    def list_members(self) -> list[Member]:
        return self.db.list_members()

    # ========================================================================
    # Groups
    # ========================================================================

    def create_group(
        self,
        name: str,
        created_by: int,
        description: str | None = None,
        member_ids: Sequence[int] = (),
    ) -> Group:
        """
        Create a group. The creator always becomes a member.

        Args:
            name: Group name
            created_by: ID of the creating member
            description: Optional description
            member_ids: Additional members to add

        Returns:
            The created group
        """
        if not name.strip():
            raise ValidationError("Group name must not be empty")
        for member_id in (created_by, *member_ids):
            self.get_member(member_id)

        with self.db.transaction(write=True):
            group = self.db.create_group(name.strip(), created_by, description)
            for member_id in member_ids:
                self.db.add_group_member(group.id, member_id)

        logger.info(f"Created group {group.id} ({group.name})")
        return self.get_group(group.id)

    def get_group(self, group_id: int) -> Group:
        group = self.db.get_group(group_id)
        if group is None:
            raise NotFoundError("group", group_id)
        return group

    def add_group_member(self, group_id: int, member_id: int) -> bool:
        """Add a member to a group. Returns False if they were already in it."""
        self.get_group(group_id)
        self.get_member(member_id)
        added = self.db.add_group_member(group_id, member_id)
        if added:
            logger.info(f"Added member {member_id} to group {group_id}")
        return added

    def list_group_members(self, group_id: int) -> list[Member]:
        self.get_group(group_id)
        return self.db.list_group_members(group_id)

    # ========================================================================
    # Expenses
    # ========================================================================

    def add_expense(
        self,
        group_id: int,
        title: str,
        amount: AmountInput,
        paid_by: int,
        splits: Sequence[tuple[int, AmountInput]] | None = None,
    ) -> ExpenseView:
        """
        Record an expense and its splits.

        When ``splits`` is omitted the amount is divided evenly between all
        group members.

        Args:
            group_id: Group the expense belongs to
            title: Short description
            amount: Total amount (positive, at most two decimal places)
            paid_by: Member who paid
            splits: (member ID, owed amount) pairs

        Returns:
            The stored expense view

        Raises:
            NotFoundError: If the group or payer does not exist
            ValidationError: If the amount, payer or splits are invalid
        """
        group = self.get_group(group_id)
        if not title.strip():
            raise ValidationError("Expense title must not be empty")
        amount_cents = parse_amount(amount)

        self.get_member(paid_by)
        if paid_by not in group.member_ids:
            raise ValidationError(
                f"Payer {paid_by} is not a member of group {group_id}"
            )

        if splits is None:
            proposed = split_evenly(amount_cents, group.member_ids)
        else:
            proposed = [
                Split(
                    member_id=member_id,
                    amount_cents=parse_amount(value, allow_zero=True),
                )
                for member_id, value in splits
            ]

        for split in proposed:
            if split.member_id not in group.member_ids:
                raise ValidationError(
                    f"Member {split.member_id} is not a member of group {group_id}"
                )

        final_splits = reconcile_splits(amount_cents, proposed, self.tolerance_cents)
        expense_id = self.db.create_expense(
            group_id, title.strip(), amount_cents, paid_by, final_splits
        )

        logger.info(
            f"Added expense {expense_id} '{title}' for {amount_cents} cents "
            f"split {len(final_splits)} ways"
        )
        return self.get_expense(expense_id)

    def split_evenly(
        self, amount: AmountInput, member_ids: Sequence[int]
    ) -> list[tuple[int, Decimal]]:
        """Even split of an amount as (member ID, amount) pairs."""
        return [
            (split.member_id, from_cents(split.amount_cents))
            for split in split_evenly(parse_amount(amount), member_ids)
        ]

    def get_expense(self, expense_id: int) -> ExpenseView:
        view = self.db.get_expense_view(expense_id)
        if view is None:
            raise NotFoundError("expense", expense_id)
        return view

    def list_expenses(self, group_id: int) -> list[ExpenseView]:
        """All expenses of a group, newest first."""
        self.get_group(group_id)
        return self.db.list_group_expenses(group_id)

    # ========================================================================
    # Balances and settlements
    # ========================================================================

    def _group_balances(self, group_id: int) -> tuple[list[Member], dict[int, int]]:
        # Members and unsettled expenses come from one snapshot
        with self.db.transaction():
            self.get_group(group_id)
            members = self.db.list_group_members(group_id)
            expenses = self.db.list_unsettled_expenses(group_id)

        balances = compute_balances(
            [m.id for m in members], expenses, self.tolerance_cents
        )
        return members, balances

    def get_balances(self, group_id: int) -> list[MemberBalance]:
        """
        Net balance of every group member across unsettled expenses.

        Returns:
            One entry per member, ordered by member ID
        """
        members, balances = self._group_balances(group_id)
        return [
            MemberBalance(member=member, balance=from_cents(balances[member.id]))
            for member in members
        ]

    def get_settlements(self, group_id: int) -> list[SuggestedTransfer]:
        """
        Suggested transfers that would settle the group.

        Returns:
            Transfers from debtor to creditor, largest creditor first
        """
        members, balances = self._group_balances(group_id)
        transfers = simplify(balances, self.tolerance_cents)

        by_id = {member.id: member for member in members}
        logger.info(
            f"Group {group_id}: {len(transfers)} transfers settle "
            f"{sum(1 for b in balances.values() if b)} non-zero balances"
        )
        return [
            SuggestedTransfer(
                from_member=by_id[t.from_member_id],
                to_member=by_id[t.to_member_id],
                amount=from_cents(t.amount_cents),
            )
            for t in transfers
        ]

    def settle_expense(
        self,
        expense_id: int,
        member_id: int,
        amount: AmountInput | None = None,
    ) -> ExpenseView:
        """
        Record a payment against an expense.

        Args:
            expense_id: Expense being repaid
            member_id: Member reporting the payment
            amount: Amount paid; defaults to the full expense amount

        Returns:
            The expense view after the payment
        """
        if amount is None:
            amount_cents = self.get_expense(expense_id).amount_cents
        else:
            amount_cents = parse_amount(amount)

        return record_settlement(
            self.db, expense_id, member_id, amount_cents, self.tolerance_cents
        )
