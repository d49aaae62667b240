"""Split construction and validation for new expenses."""

import logging
from collections.abc import Sequence

from .exceptions import ValidationError
from .models import Split

logger = logging.getLogger(__name__)


def split_evenly(amount_cents: int, member_ids: Sequence[int]) -> list[Split]:
    """
    Divide an amount evenly between members.

    Leftover cents go one each to the first members in ID order, so the
    shares always sum to the amount exactly.

    Args:
        amount_cents: Total to divide
        member_ids: Members sharing the amount

    Returns:
        One split per member, ordered by member ID
    """
    unique_ids = sorted(set(member_ids))
    if not unique_ids:
        raise ValidationError("Cannot split an expense between zero members")

    share, remainder = divmod(amount_cents, len(unique_ids))
    return [
        Split(member_id=member_id, amount_cents=share + (1 if i < remainder else 0))
        for i, member_id in enumerate(unique_ids)
    ]


def reconcile_splits(
    amount_cents: int,
    splits: Sequence[Split],
    tolerance_cents: int = 1,
) -> list[Split]:
    """
    Validate splits against an expense total and absorb rounding residual.

    Steps:
    1. Reject empty splits and duplicate members
    2. Compute residual = amount - sum of splits
    3. If the residual exceeds the tolerance, reject
    4. Otherwise add the residual to the largest split

    Args:
        amount_cents: Expense total in cents
        splits: Proposed splits
        tolerance_cents: Largest residual that counts as rounding

    Returns:
        New splits summing exactly to the amount

    Raises:
        ValidationError: If splits are empty, repeat a member, or do not sum
            to the amount within tolerance
    """
    if not splits:
        raise ValidationError("An expense needs at least one split")

    seen: set[int] = set()
    for split in splits:
        if split.member_id in seen:
            raise ValidationError(
                f"Member {split.member_id} appears more than once in the splits"
            )
        seen.add(split.member_id)

    lines = [split.model_copy() for split in splits]
    actual_total = sum(line.amount_cents for line in lines)
    residual = amount_cents - actual_total

    if abs(residual) > tolerance_cents:
        raise ValidationError(
            f"Split amounts must equal the total amount: "
            f"splits sum to {actual_total} cents, expense is {amount_cents} cents"
        )

    if residual != 0:
        largest = max(lines, key=lambda line: (line.amount_cents, -line.member_id))
        if largest.amount_cents + residual < 0:
            raise ValidationError("Split amounts must not be negative")
        largest.amount_cents += residual

        logger.info(
            f"Applied rounding adjustment: {residual} cents "
            f"to member {largest.member_id}"
        )

    assert sum(line.amount_cents for line in lines) == amount_cents
    return lines
