"""Debt simplification: turn net balances into a short list of transfers."""

import logging
from collections.abc import Mapping

from .exceptions import IntegrityError
from .models import Transfer

logger = logging.getLogger(__name__)


def simplify(balances: Mapping[int, int], tolerance_cents: int = 1) -> list[Transfer]:
    """
    Greedy creditor/debtor matching over two sorted queues.

    Steps:
    1. Split members into creditors (> tolerance) and debtors (< -tolerance);
       everyone else counts as settled
    2. Sort both by amount, largest first, ties by member ID ascending
    3. Repeatedly match the current largest creditor with the current largest
       debtor for the smaller of their remaining amounts
    4. Advance a cursor once its party is within tolerance of zero

    This does not always find the fewest possible transfers, but it is
    deterministic, produces at most N-1 transfers for N non-zero balances and
    runs in O(N log N). The input is never modified.

    Args:
        balances: Member ID to signed balance in cents (positive = is owed)
        tolerance_cents: Balances within this distance of zero are ignored

    Returns:
        Transfers from debtor to creditor, in the order they were matched

    Raises:
        IntegrityError: If one queue runs dry while the other still holds
            more than rounding slack, which means the balances did not net
            to zero
    """
    creditors = tuple(
        sorted(
            (
                (member_id, amount)
                for member_id, amount in balances.items()
                if amount > tolerance_cents
            ),
            key=_queue_order,
        )
    )
    debtors = tuple(
        sorted(
            (
                (member_id, -amount)
                for member_id, amount in balances.items()
                if amount < -tolerance_cents
            ),
            key=_queue_order,
        )
    )

    transfers: list[Transfer] = []
    ci, di = 0, 0
    credit_left = creditors[0][1] if creditors else 0
    debt_left = debtors[0][1] if debtors else 0

    while ci < len(creditors) and di < len(debtors):
        amount = min(credit_left, debt_left)
        transfers.append(
            Transfer(
                from_member_id=debtors[di][0],
                to_member_id=creditors[ci][0],
                amount_cents=amount,
            )
        )
        credit_left -= amount
        debt_left -= amount

        if credit_left <= tolerance_cents:
            ci += 1
            credit_left = creditors[ci][1] if ci < len(creditors) else 0
        if debt_left <= tolerance_cents:
            di += 1
            debt_left = debtors[di][1] if di < len(debtors) else 0

    credit_remaining = credit_left + sum(amount for _, amount in creditors[ci + 1 :])
    debt_remaining = debt_left + sum(amount for _, amount in debtors[di + 1 :])
    unmatched = credit_remaining + debt_remaining
    # Every member can leave at most one tolerance behind: either excluded
    # up front or as residue when its cursor advanced.
    if unmatched > tolerance_cents * len(balances):
        message = (
            f"Settlement queues did not empty together: {unmatched} cents "
            f"left unmatched ({len(creditors) - ci} creditors, "
            f"{len(debtors) - di} debtors remaining)"
        )
        logger.error(message)
        raise IntegrityError(message)

    logger.debug(
        f"Simplified {len(creditors)} creditors and {len(debtors)} debtors "
        f"into {len(transfers)} transfers"
    )
    return transfers


def _queue_order(entry: tuple[int, int]) -> tuple[int, int]:
    # Largest amount first, ties by member ID
    member_id, amount = entry
    return -amount, member_id
