"""Balance aggregation: fold a group's unsettled expenses into net positions."""

import logging
from collections.abc import Iterable, Sequence

from .exceptions import IntegrityError
from .models import Expense

logger = logging.getLogger(__name__)


def compute_balances(
    group_members: Iterable[int],
    unsettled_expenses: Sequence[Expense],
    tolerance_cents: int = 1,
) -> dict[int, int]:
    """
    Compute each member's signed net balance in cents.

    Positive means the member is owed money, negative means they owe. The
    payer of an expense is credited with the full amount and every split
    member is debited their share; a payer who also has a split gets both.
    Settled expenses are skipped entirely.

    Args:
        group_members: IDs of every member of the group
        unsettled_expenses: Expenses with their splits
        tolerance_cents: Allowed per-expense rounding slack

    Returns:
        Mapping of member ID to balance in cents, with an entry for every
        group member (0 for members without expenses)

    Raises:
        IntegrityError: If an expense references a non-member, or the
            balances do not net to zero within tolerance
    """
    balances = {member_id: 0 for member_id in group_members}

    counted = 0
    for expense in unsettled_expenses:
        if expense.settled:
            continue
        counted += 1

        if expense.paid_by not in balances:
            _fail(
                f"Expense {expense.id} was paid by member {expense.paid_by}, "
                f"who is not in the group"
            )
        balances[expense.paid_by] += expense.amount_cents

        for split in expense.splits:
            if split.member_id not in balances:
                _fail(
                    f"Expense {expense.id} has a split for member "
                    f"{split.member_id}, who is not in the group"
                )
            balances[split.member_id] -= split.amount_cents

    # Each expense may carry up to one tolerance of rounding slack
    total = sum(balances.values())
    if abs(total) > tolerance_cents * counted:
        _fail(
            f"Balances do not net to zero: off by {total} cents "
            f"across {counted} expenses"
        )

    logger.debug(
        f"Computed balances for {len(balances)} members "
        f"from {counted} unsettled expenses"
    )
    return balances


def _fail(message: str):
    logger.error(message)
    raise IntegrityError(message)
