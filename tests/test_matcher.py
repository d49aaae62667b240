"""Tests for the greedy settlement matcher."""

import random

import pytest

from split_ledger.exceptions import IntegrityError
from split_ledger.matcher import simplify
from split_ledger.models import Transfer

ALICE, BOB, CAROL, DAVE, ERIN = 1, 2, 3, 4, 5


def net_effect(transfers: list[Transfer], member_id: int) -> int:
    """Received minus paid for one member."""
    received = sum(t.amount_cents for t in transfers if t.to_member_id == member_id)
    paid = sum(t.amount_cents for t in transfers if t.from_member_id == member_id)
    return received - paid


class TestScenarios:
    """Worked examples."""

    def test_single_creditor(self):
        """Alice +20, Bob -10, Carol -10."""
        transfers = simplify({ALICE: 2000, BOB: -1000, CAROL: -1000})

        assert transfers == [
            Transfer(from_member_id=BOB, to_member_id=ALICE, amount_cents=1000),
            Transfer(from_member_id=CAROL, to_member_id=ALICE, amount_cents=1000),
        ]

    def test_single_debtor_pays_larger_creditor_first(self):
        """Alice +15, Bob +5, Carol -20."""
        transfers = simplify({ALICE: 1500, BOB: 500, CAROL: -2000})

        assert transfers == [
            Transfer(from_member_id=CAROL, to_member_id=ALICE, amount_cents=1500),
            Transfer(from_member_id=CAROL, to_member_id=BOB, amount_cents=500),
        ]
        assert sum(t.amount_cents for t in transfers) == 2000

    def test_chain_collapses(self):
        """Partial matches carry the remainder to the next party."""
        transfers = simplify({ALICE: 3000, BOB: -1000, CAROL: -500, DAVE: -1500})

        assert transfers == [
            Transfer(from_member_id=DAVE, to_member_id=ALICE, amount_cents=1500),
            Transfer(from_member_id=BOB, to_member_id=ALICE, amount_cents=1000),
            Transfer(from_member_id=CAROL, to_member_id=ALICE, amount_cents=500),
        ]

    def test_all_settled(self):
        assert simplify({ALICE: 0, BOB: 0}) == []

    def test_empty(self):
        assert simplify({}) == []


class TestTolerance:
    """Balances within tolerance of zero are treated as settled."""

    def test_one_cent_balances_excluded(self):
        transfers = simplify({ALICE: 1001, BOB: -1000, CAROL: -1})

        assert transfers == [
            Transfer(from_member_id=BOB, to_member_id=ALICE, amount_cents=1000)
        ]

    def test_dust_on_one_side_only(self):
        """A creditor owed two cents by two one-cent debtors."""
        assert simplify({ALICE: 2, BOB: -1, CAROL: -1}) == []

    def test_zero_tolerance_matches_every_cent(self):
        transfers = simplify({ALICE: 2, BOB: -1, CAROL: -1}, tolerance_cents=0)

        assert transfers == [
            Transfer(from_member_id=BOB, to_member_id=ALICE, amount_cents=1),
            Transfer(from_member_id=CAROL, to_member_id=ALICE, amount_cents=1),
        ]

    def test_larger_configured_tolerance(self):
        transfers = simplify({ALICE: 1000, BOB: -995, CAROL: -5}, tolerance_cents=10)

        assert transfers == [
            Transfer(from_member_id=BOB, to_member_id=ALICE, amount_cents=995)
        ]


class TestDeterminism:
    """Ties are broken by member ID so output is reproducible."""

    def test_equal_creditors_sorted_by_id(self):
        transfers = simplify({CAROL: 1000, ALICE: 1000, BOB: -2000})

        assert [t.to_member_id for t in transfers] == [ALICE, CAROL]

    def test_equal_debtors_sorted_by_id(self):
        transfers = simplify({DAVE: -1000, BOB: -1000, ALICE: 2000})

        assert [t.from_member_id for t in transfers] == [BOB, DAVE]

    def test_insertion_order_irrelevant(self):
        balances = {ALICE: 700, BOB: 700, CAROL: -400, DAVE: -400, ERIN: -600}
        reversed_balances = dict(reversed(list(balances.items())))

        assert simplify(balances) == simplify(reversed_balances)

    def test_input_not_modified(self):
        balances = {ALICE: 2000, BOB: -1000, CAROL: -1000}
        snapshot = dict(balances)

        simplify(balances)

        assert balances == snapshot


class TestProperties:
    """Conservation and transfer-count bounds over random groups."""

    @pytest.mark.parametrize("seed", range(25))
    def test_conservation_and_bound(self, seed):
        rng = random.Random(seed)
        members = list(range(1, rng.randint(2, 12) + 1))
        balances = {m: rng.randint(-50_000, 50_000) for m in members[:-1]}
        balances[members[-1]] = -sum(balances.values())

        transfers = simplify(balances, tolerance_cents=0)

        for member_id, balance in balances.items():
            assert net_effect(transfers, member_id) == balance
        non_zero = sum(1 for b in balances.values() if b)
        assert len(transfers) <= max(non_zero - 1, 0)
        assert all(t.amount_cents > 0 for t in transfers)
        assert all(t.from_member_id != t.to_member_id for t in transfers)

    @pytest.mark.parametrize("seed", range(10))
    def test_conservation_within_tolerance(self, seed):
        rng = random.Random(seed)
        balances = {m: rng.randint(-10_000, 10_000) for m in range(1, 8)}
        balances[8] = -sum(balances.values())

        transfers = simplify(balances, tolerance_cents=1)

        drift = [
            abs(net_effect(transfers, member_id) - balance)
            for member_id, balance in balances.items()
        ]
        # Each member leaves at most one tolerance of residue behind
        assert sum(drift) <= 1 * len(balances)


class TestQueueMismatch:
    """Balances that do not net to zero are an internal failure."""

    def test_more_credit_than_debt(self):
        with pytest.raises(IntegrityError, match="did not empty together"):
            simplify({ALICE: 1000, BOB: -500})

    def test_only_debtors(self):
        with pytest.raises(IntegrityError):
            simplify({ALICE: -1000, BOB: -500})
