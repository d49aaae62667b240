"""Settlement recording: apply payments to an expense until it is covered."""

import logging

from .db import Database
from .exceptions import NotFoundError, ValidationError
from .models import ExpenseView

logger = logging.getLogger(__name__)


def is_fully_settled(
    amount_cents: int, total_settled_cents: int, tolerance_cents: int
) -> bool:
    """An expense is settled once payments reach its amount, less tolerance."""
    return total_settled_cents >= amount_cents - tolerance_cents


def record_settlement(
    db: Database,
    expense_id: int,
    member_id: int,
    amount_cents: int,
    tolerance_cents: int = 1,
) -> ExpenseView:
    """
    Record a payment against an expense and refresh its settled flag.

    Any member of the expense's group may report a payment; the expense is
    tracked as a whole, not per debtor. Overpayment is accepted and leaves
    the expense settled.

    The append, the re-sum and the flag update run in one write
    transaction, so two concurrent payments against the same expense cannot
    both read a stale total.

    Args:
        db: Ledger store
        expense_id: Expense the payment applies to
        member_id: Member who made the payment
        amount_cents: Payment amount in cents
        tolerance_cents: Shortfall still treated as fully paid

    Returns:
        The expense's full view after the write

    Raises:
        ValidationError: If the amount is not positive or the member is not
            in the expense's group
        NotFoundError: If the expense or member does not exist
    """
    if amount_cents <= 0:
        raise ValidationError(
            f"Settlement amount must be positive, got {amount_cents} cents"
        )

    with db.transaction(write=True):
        expense = db.get_expense(expense_id)
        if expense is None:
            raise NotFoundError("expense", expense_id)

        if db.get_member(member_id) is None:
            raise NotFoundError("member", member_id)
        if not db.is_group_member(expense.group_id, member_id):
            raise ValidationError(
                f"Member {member_id} is not in group {expense.group_id} "
                f"and cannot settle expense {expense_id}"
            )

        db.append_settlement(expense_id, member_id, amount_cents)
        total = db.total_settled(expense_id)
        settled = is_fully_settled(expense.amount_cents, total, tolerance_cents)
        db.set_expense_settled(expense_id, settled)

        view = db.get_expense_view(expense_id)
        assert view is not None

    if settled and not expense.settled:
        logger.info(
            f"Expense {expense_id} fully settled "
            f"({total} of {expense.amount_cents} cents paid)"
        )
    else:
        logger.info(
            f"Recorded {amount_cents} cents against expense {expense_id} "
            f"({total} of {expense.amount_cents} cents paid)"
        )

    return view
