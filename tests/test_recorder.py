"""Tests for settlement recording against a real database."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from split_ledger.db import Database
from split_ledger.exceptions import NotFoundError, ValidationError
from split_ledger.recorder import is_fully_settled, record_settlement


@pytest.fixture
def dinner(service, trio):
    """A 40.00 expense paid by Alice, split between Bob and Carol."""
    group, alice, bob, carol = trio
    return service.add_expense(
        group.id, "Dinner", "40.00", alice.id, [(bob.id, "20.00"), (carol.id, "20.00")]
    )


class TestIsFullySettled:
    """The derivation rule for the cached settled flag."""

    def test_exact(self):
        assert is_fully_settled(4000, 4000, tolerance_cents=1)

    def test_one_cent_short_within_tolerance(self):
        assert is_fully_settled(4000, 3999, tolerance_cents=1)

    def test_two_cents_short(self):
        assert not is_fully_settled(4000, 3998, tolerance_cents=1)

    def test_overpaid(self):
        assert is_fully_settled(4000, 4500, tolerance_cents=1)


class TestPartialSettlement:
    """Payments accumulate until the expense is covered."""

    def test_settles_only_after_second_payment(self, db, trio, dinner):
        _, _, bob, carol = trio

        after_first = record_settlement(db, dinner.id, bob.id, 1500)
        assert after_first.settled is False
        assert after_first.total_settled_cents == 1500
        assert after_first.outstanding_cents == 2500

        after_second = record_settlement(db, dinner.id, carol.id, 2500)
        assert after_second.settled is True
        assert after_second.total_settled_cents == 4000
        assert after_second.outstanding_cents == 0

    def test_overpayment_accepted_and_stays_settled(self, db, trio, dinner):
        _, _, bob, carol = trio
        record_settlement(db, dinner.id, bob.id, 1500)
        record_settlement(db, dinner.id, carol.id, 2500)

        after_extra = record_settlement(db, dinner.id, bob.id, 500)

        assert after_extra.settled is True
        assert after_extra.total_settled_cents == 4500
        assert len(after_extra.settlements) == 3

    def test_single_full_payment(self, db, trio, dinner):
        _, alice, _, _ = trio

        view = record_settlement(db, dinner.id, alice.id, 4000)

        assert view.settled is True

    def test_within_tolerance_counts_as_settled(self, db, trio, dinner):
        _, _, bob, _ = trio

        view = record_settlement(db, dinner.id, bob.id, 3999, tolerance_cents=1)

        assert view.settled is True

    def test_any_group_member_may_pay(self, db, trio, dinner):
        """Payments are counted regardless of who owed the money."""
        _, alice, _, _ = trio

        view = record_settlement(db, dinner.id, alice.id, 1000)

        assert view.settlements[0].member.id == alice.id

    def test_returns_full_view(self, db, trio, dinner):
        _, _, bob, _ = trio

        view = record_settlement(db, dinner.id, bob.id, 1000)

        assert view.title == "Dinner"
        assert [s.amount_cents for s in view.splits] == [2000, 2000]
        assert view.settlements[0].amount_cents == 1000


class TestSettlementValidation:
    """Rejected settlement requests leave no trace."""

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_amount_rejected(self, db, trio, dinner, amount):
        _, _, bob, _ = trio

        with pytest.raises(ValidationError, match="must be positive"):
            record_settlement(db, dinner.id, bob.id, amount)

        assert db.total_settled(dinner.id) == 0

    def test_non_positive_rejected_after_settled(self, db, trio, dinner):
        """Settled exactly once; a further zero payment is rejected."""
        _, _, bob, _ = trio
        record_settlement(db, dinner.id, bob.id, 4000)

        with pytest.raises(ValidationError):
            record_settlement(db, dinner.id, bob.id, 0)

        view = db.get_expense_view(dinner.id)
        assert view.settled is True
        assert len(view.settlements) == 1

    def test_unknown_expense(self, db, trio):
        _, _, bob, _ = trio

        with pytest.raises(NotFoundError, match="Expense 999 not found"):
            record_settlement(db, 999, bob.id, 100)

    def test_unknown_member(self, db, dinner):
        with pytest.raises(NotFoundError, match="Member 999 not found"):
            record_settlement(db, dinner.id, 999, 100)

    def test_member_outside_group_rejected(self, service, db, dinner):
        outsider = service.create_member("Mallory", "mallory@example.com")

        with pytest.raises(ValidationError, match="not in group"):
            record_settlement(db, dinner.id, outsider.id, 100)

        assert db.total_settled(dinner.id) == 0


class TestConcurrentSettlement:
    """Concurrent payments against one expense never lose an update."""

    def test_threads_sharing_one_connection(self, db, trio, dinner):
        _, _, bob, carol = trio
        payers = [bob.id, carol.id] * 20

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(
                pool.map(
                    lambda member_id: record_settlement(db, dinner.id, member_id, 100),
                    payers,
                )
            )

        view = db.get_expense_view(dinner.id)
        assert view.total_settled_cents == 4000
        assert len(view.settlements) == 40
        assert view.settled is True

    def test_separate_connections(self, settings, db, trio, dinner):
        """Writers on separate connections are serialised by the database."""
        _, _, bob, _ = trio
        connections = [Database(settings.database_path) for _ in range(4)]

        def pay(conn: Database):
            for _ in range(5):
                record_settlement(conn, dinner.id, bob.id, 100)

        try:
            with ThreadPoolExecutor(max_workers=4) as pool:
                list(pool.map(pay, connections))
        finally:
            for conn in connections:
                conn.close()

        view = db.get_expense_view(dinner.id)
        assert view.total_settled_cents == 2000
        assert view.settled is False

    def test_flag_matches_sum_at_threshold(self, db, trio, dinner):
        """Exactly one of the racing payments flips the flag."""
        _, _, bob, carol = trio

        with ThreadPoolExecutor(max_workers=2) as pool:
            results = list(
                pool.map(
                    lambda member_id: record_settlement(
                        db, dinner.id, member_id, 2000
                    ),
                    [bob.id, carol.id],
                )
            )

        assert sorted(r.settled for r in results) == [False, True]
        assert db.get_expense(dinner.id).settled is True
