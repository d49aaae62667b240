"""SQLite ledger store for split-ledger."""

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from .exceptions import ValidationError
from .models import (
    Expense,
    ExpenseView,
    Group,
    Member,
    Settlement,
    SettlementView,
    Split,
    SplitView,
)

logger = logging.getLogger(__name__)


class Database:
    """SQLite database manager.

    The connection runs in autocommit mode and every multi-statement
    operation goes through ``transaction()``. A re-entrant lock serialises
    threads sharing this instance; ``BEGIN IMMEDIATE`` serialises writers
    across processes sharing the file. In WAL mode a read transaction keeps
    its snapshot while other connections commit.
    """

    def __init__(self, db_path: Path):
        """Initialize database connection."""
        self.db_path = db_path
        self.conn = sqlite3.connect(
            str(db_path),
            isolation_level=None,
            check_same_thread=False,
            timeout=30.0,
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.execute("PRAGMA journal_mode = WAL")
        self._lock = threading.RLock()
        self._depth = 0
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        with self.transaction(write=True):
            cursor = self.conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS members (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    email TEXT NOT NULL UNIQUE,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_groups (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_by INTEGER NOT NULL REFERENCES members(id),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS group_members (
                    group_id INTEGER NOT NULL REFERENCES ledger_groups(id),
                    member_id INTEGER NOT NULL REFERENCES members(id),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (group_id, member_id)
                )
            """
            )

            # Amounts are integer cents
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS expenses (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
                    group_id INTEGER NOT NULL REFERENCES ledger_groups(id),
                    paid_by INTEGER NOT NULL REFERENCES members(id),
                    settled INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS expense_splits (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    expense_id INTEGER NOT NULL REFERENCES expenses(id),
                    member_id INTEGER NOT NULL REFERENCES members(id),
                    amount_cents INTEGER NOT NULL CHECK (amount_cents >= 0),
                    UNIQUE (expense_id, member_id)
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS expense_settlements (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    expense_id INTEGER NOT NULL REFERENCES expenses(id),
                    member_id INTEGER NOT NULL REFERENCES members(id),
                    amount_cents INTEGER NOT NULL CHECK (amount_cents > 0),
                    settled_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """
            )

            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_expenses_group_settled
                ON expenses (group_id, settled)
            """
            )

    def close(self):
        """Close database connection."""
        self.conn.close()

    @contextmanager
    def transaction(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Run a block inside one SQLite transaction.

        Reads inside the block see a single consistent snapshot. With
        ``write=True`` the write lock is taken up front so a
        read-modify-write sequence cannot interleave with another writer.
        Nested calls join the outermost transaction.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self.conn
                finally:
                    self._depth -= 1
                return

            self.conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            self._depth = 1
            try:
                yield self.conn
            except BaseException:
                self.conn.execute("ROLLBACK")
                raise
            else:
                self.conn.execute("COMMIT")
            finally:
                self._depth = 0

    # ========================================================================
    # Member operations
    # ========================================================================

    def create_member(self, name: str, email: str) -> Member:
        """Create a member. Emails are unique."""
        now = datetime.now().isoformat()
        try:
            with self.transaction(write=True):
                cursor = self.conn.execute(
                    """
                    INSERT INTO members (name, email, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (name, email, now, now),
                )
        except sqlite3.IntegrityError:
            raise ValidationError(
                f"A member with email {email} already exists"
            ) from None

        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Failed to insert member")
        return Member(id=row_id, name=name, email=email)

    def update_member(
        self, member_id: int, name: str | None = None, email: str | None = None
    ) -> Member | None:
        """Update a member's name and/or email in place."""
        try:
            with self.transaction(write=True):
                member = self.get_member(member_id)
                if member is None:
                    return None
                updated = Member(
                    id=member.id,
                    name=name if name is not None else member.name,
                    email=email if email is not None else member.email,
                )
                self.conn.execute(
                    """
                    UPDATE members SET name = ?, email = ?, updated_at = ?
                    WHERE id = ?
                    """,
                    (
                        updated.name,
                        updated.email,
                        datetime.now().isoformat(),
                        member_id,
                    ),
                )
        except sqlite3.IntegrityError:
            raise ValidationError(
                f"A member with email {email} already exists"
            ) from None
        return updated

    def get_member(self, member_id: int) -> Member | None:
        """Get a member by ID."""
        with self.transaction():
            row = self.conn.execute(
                "SELECT id, name, email FROM members WHERE id = ?", (member_id,)
            ).fetchone()
        return _member_from_row(row) if row else None

    def list_members(self) -> list[Member]:
        """Get all members."""
        with self.transaction():
            rows = self.conn.execute(
                "SELECT id, name, email FROM members ORDER BY id"
            ).fetchall()
        return [_member_from_row(row) for row in rows]

    # ========================================================================
    # Group operations
    # ========================================================================

    def create_group(
        self, name: str, created_by: int, description: str | None = None
    ) -> Group:
        """Create a group; the creator is added as its first member."""
        now = datetime.now().isoformat()
        with self.transaction(write=True):
            cursor = self.conn.execute(
                """
                INSERT INTO ledger_groups (name, description, created_by, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (name, description, created_by, now),
            )
            group_id = cursor.lastrowid
            if group_id is None:
                raise RuntimeError("Failed to insert group")
            self.add_group_member(group_id, created_by)

        group = self.get_group(group_id)
        assert group is not None
        return group

    def get_group(self, group_id: int) -> Group | None:
        """Get a group with its member IDs."""
        with self.transaction():
            row = self.conn.execute(
                """
                SELECT id, name, description, created_by, created_at
                FROM ledger_groups WHERE id = ?
                """,
                (group_id,),
            ).fetchone()
            if not row:
                return None
            member_rows = self.conn.execute(
                "SELECT member_id FROM group_members WHERE group_id = ? "
                "ORDER BY member_id",
                (group_id,),
            ).fetchall()

        return Group(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_by=row["created_by"],
            member_ids=[r["member_id"] for r in member_rows],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def add_group_member(self, group_id: int, member_id: int) -> bool:
        """Add a member to a group. Returns False if already a member."""
        now = datetime.now().isoformat()
        with self.transaction(write=True):
            cursor = self.conn.execute(
                """
                INSERT OR IGNORE INTO group_members (group_id, member_id, created_at)
                VALUES (?, ?, ?)
                """,
                (group_id, member_id, now),
            )
        return cursor.rowcount > 0

    def is_group_member(self, group_id: int, member_id: int) -> bool:
        """Check if a member belongs to a group."""
        with self.transaction():
            row = self.conn.execute(
                "SELECT 1 FROM group_members WHERE group_id = ? AND member_id = ?",
                (group_id, member_id),
            ).fetchone()
        return row is not None

    def list_group_members(self, group_id: int) -> list[Member]:
        """Get the members of a group, ordered by ID."""
        with self.transaction():
            rows = self.conn.execute(
                """
                SELECT m.id, m.name, m.email
                FROM group_members gm
                INNER JOIN members m ON gm.member_id = m.id
                WHERE gm.group_id = ?
                ORDER BY m.id
                """,
                (group_id,),
            ).fetchall()
        return [_member_from_row(row) for row in rows]

    # ========================================================================
    # Expense operations
    # ========================================================================

    def create_expense(
        self,
        group_id: int,
        title: str,
        amount_cents: int,
        paid_by: int,
        splits: list[Split],
    ) -> int:
        """Insert an expense and all of its splits atomically."""
        with self.transaction(write=True):
            cursor = self.conn.execute(
                """
                INSERT INTO expenses (
                    title, amount_cents, group_id, paid_by, created_at
                ) VALUES (?, ?, ?, ?, ?)
                """,
                (title, amount_cents, group_id, paid_by, datetime.now().isoformat()),
            )
            expense_id = cursor.lastrowid
            if expense_id is None:
                raise RuntimeError("Failed to insert expense")

            self.conn.executemany(
                """
                INSERT INTO expense_splits (expense_id, member_id, amount_cents)
                VALUES (?, ?, ?)
                """,
                [(expense_id, s.member_id, s.amount_cents) for s in splits],
            )

        logger.debug(f"Inserted expense {expense_id} with {len(splits)} splits")
        return expense_id

    def get_expense(self, expense_id: int) -> Expense | None:
        """Get an expense with its splits."""
        with self.transaction():
            row = self.conn.execute(
                """
                SELECT id, group_id, title, amount_cents, paid_by, settled, created_at
                FROM expenses WHERE id = ?
                """,
                (expense_id,),
            ).fetchone()
            if not row:
                return None
            split_rows = self.conn.execute(
                """
                SELECT expense_id, member_id, amount_cents
                FROM expense_splits WHERE expense_id = ?
                ORDER BY member_id
                """,
                (expense_id,),
            ).fetchall()

        return _expense_from_row(row, split_rows)

    def list_unsettled_expenses(self, group_id: int) -> list[Expense]:
        """Get a group's unsettled expenses with their splits, oldest first."""
        with self.transaction():
            rows = self.conn.execute(
                """
                SELECT id, group_id, title, amount_cents, paid_by, settled, created_at
                FROM expenses
                WHERE group_id = ? AND settled = 0
                ORDER BY id
                """,
                (group_id,),
            ).fetchall()
            split_rows = self.conn.execute(
                """
                SELECT es.expense_id, es.member_id, es.amount_cents
                FROM expense_splits es
                INNER JOIN expenses e ON es.expense_id = e.id
                WHERE e.group_id = ? AND e.settled = 0
                ORDER BY es.expense_id, es.member_id
                """,
                (group_id,),
            ).fetchall()

        splits_by_expense: dict[int, list[sqlite3.Row]] = {}
        for split_row in split_rows:
            splits_by_expense.setdefault(split_row["expense_id"], []).append(split_row)

        return [
            _expense_from_row(row, splits_by_expense.get(row["id"], []))
            for row in rows
        ]

    def get_expense_view(self, expense_id: int) -> ExpenseView | None:
        """Get the full current view of an expense."""
        with self.transaction():
            row = self.conn.execute(
                """
                SELECT e.id, e.title, e.amount_cents, e.settled, e.created_at,
                       g.id AS group_id, g.name AS group_name,
                       m.id AS payer_id, m.name AS payer_name, m.email AS payer_email
                FROM expenses e
                INNER JOIN ledger_groups g ON e.group_id = g.id
                INNER JOIN members m ON e.paid_by = m.id
                WHERE e.id = ?
                """,
                (expense_id,),
            ).fetchone()
            if not row:
                return None
            return self._build_view(row)

    def list_group_expenses(self, group_id: int) -> list[ExpenseView]:
        """Get all expenses of a group, newest first."""
        with self.transaction():
            rows = self.conn.execute(
                """
                SELECT e.id, e.title, e.amount_cents, e.settled, e.created_at,
                       g.id AS group_id, g.name AS group_name,
                       m.id AS payer_id, m.name AS payer_name, m.email AS payer_email
                FROM expenses e
                INNER JOIN ledger_groups g ON e.group_id = g.id
                INNER JOIN members m ON e.paid_by = m.id
                WHERE e.group_id = ?
                ORDER BY e.created_at DESC, e.id DESC
                """,
                (group_id,),
            ).fetchall()
            return [self._build_view(row) for row in rows]

    def _build_view(self, row: sqlite3.Row) -> ExpenseView:
        split_rows = self.conn.execute(
            """
            SELECT es.amount_cents, m.id, m.name, m.email
            FROM expense_splits es
            INNER JOIN members m ON es.member_id = m.id
            WHERE es.expense_id = ?
            ORDER BY m.id
            """,
            (row["id"],),
        ).fetchall()
        settlement_rows = self.conn.execute(
            """
            SELECT es.id AS settlement_id, es.amount_cents, es.settled_at,
                   m.id, m.name, m.email
            FROM expense_settlements es
            INNER JOIN members m ON es.member_id = m.id
            WHERE es.expense_id = ?
            ORDER BY es.settled_at DESC, es.id DESC
            """,
            (row["id"],),
        ).fetchall()

        return ExpenseView(
            id=row["id"],
            title=row["title"],
            amount_cents=row["amount_cents"],
            group_id=row["group_id"],
            group_name=row["group_name"],
            paid_by=Member(
                id=row["payer_id"], name=row["payer_name"], email=row["payer_email"]
            ),
            settled=bool(row["settled"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            splits=[
                SplitView(member=_member_from_row(r), amount_cents=r["amount_cents"])
                for r in split_rows
            ],
            settlements=[
                SettlementView(
                    id=r["settlement_id"],
                    member=_member_from_row(r),
                    amount_cents=r["amount_cents"],
                    settled_at=datetime.fromisoformat(r["settled_at"]),
                )
                for r in settlement_rows
            ],
        )

    # ========================================================================
    # Settlement operations
    # ========================================================================

    def append_settlement(
        self, expense_id: int, member_id: int, amount_cents: int
    ) -> Settlement:
        """Append a settlement row for an expense."""
        settlement = Settlement(
            expense_id=expense_id, member_id=member_id, amount_cents=amount_cents
        )
        with self.transaction(write=True):
            cursor = self.conn.execute(
                """
                INSERT INTO expense_settlements (
                    expense_id, member_id, amount_cents, settled_at
                ) VALUES (?, ?, ?, ?)
                """,
                (
                    settlement.expense_id,
                    settlement.member_id,
                    settlement.amount_cents,
                    settlement.settled_at.isoformat(),
                ),
            )
        row_id = cursor.lastrowid
        if row_id is None:
            raise RuntimeError("Failed to insert settlement record")
        settlement.id = row_id
        return settlement

    def total_settled(self, expense_id: int) -> int:
        """Sum of all settlement amounts recorded against an expense, in cents."""
        with self.transaction():
            row = self.conn.execute(
                """
                SELECT COALESCE(SUM(amount_cents), 0) AS total
                FROM expense_settlements WHERE expense_id = ?
                """,
                (expense_id,),
            ).fetchone()
        return int(row["total"])

    def set_expense_settled(self, expense_id: int, settled: bool):
        """Write the cached settled flag of an expense."""
        with self.transaction(write=True):
            self.conn.execute(
                "UPDATE expenses SET settled = ? WHERE id = ?",
                (int(settled), expense_id),
            )


def _member_from_row(row: sqlite3.Row) -> Member:
    return Member(id=row["id"], name=row["name"], email=row["email"])


def _expense_from_row(row: sqlite3.Row, split_rows: list[sqlite3.Row]) -> Expense:
    return Expense(
        id=row["id"],
        group_id=row["group_id"],
        title=row["title"],
        amount_cents=row["amount_cents"],
        paid_by=row["paid_by"],
        settled=bool(row["settled"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        splits=[
            Split(member_id=r["member_id"], amount_cents=r["amount_cents"])
            for r in split_rows
        ],
    )
