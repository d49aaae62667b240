"""MCP server for split-ledger: balances, settlement plans and settling as tools."""

import logging
from dataclasses import dataclass

from mcp.server.fastmcp import FastMCP

from .config import load_settings
from .db import Database
from .exceptions import IntegrityError, SplitLedgerError
from .money import format_money, to_cents
from .service import LedgerService

logger = logging.getLogger(__name__)

mcp_app = FastMCP("split-ledger")

WORKFLOW_INSTRUCTIONS = """\
You are helping a group settle shared expenses. Follow this workflow:

1. BALANCES: Call list_balances with the group ID to see who is owed money
   (positive) and who owes money (negative).

2. PLAN: Call list_settlements to get the suggested transfers that settle
   the group. Present them to the user as "X pays Y amount".

3. EXPENSES: Call list_expenses to see which expenses are still open and how
   much has been paid back on each.

4. SETTLE: When the user reports a payment, call settle_expense with the
   expense ID, the paying member's ID and the amount. Omit the amount to pay
   off the full expense. Confirm the remaining outstanding amount.

Amounts always have two decimal places. Negative = owes money, \
positive = is owed money.\
"""


# ---------------------------------------------------------------------------
# Session state: one MCP server process per conversation
# ---------------------------------------------------------------------------


@dataclass
class SessionState:
    """Holds the service between MCP tool calls."""

    service: LedgerService | None = None
    db: Database | None = None


_state = SessionState()


def _ensure_service() -> LedgerService:
    """Lazily initialize the LedgerService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.db = Database(settings.database_path)
        _state.service = LedgerService(settings, _state.db)
    return _state.service


def _error(e: SplitLedgerError) -> str:
    if isinstance(e, IntegrityError):
        logger.error(f"Ledger integrity failure: {e.reason}")
        return f"Internal error (status {e.status_code}): {e.reason}"
    return f"Error: {e.reason}"


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def list_balances(group_id: int) -> str:
    """Show every member's net balance in a group.

    Args:
        group_id: The group to compute balances for.
    """
    try:
        service = _ensure_service()
        symbol = service.settings.currency_symbol
        group = service.get_group(group_id)
        balances = service.get_balances(group_id)

        lines = [f"Balances for {group.name}:"]
        for entry in balances:
            lines.append(
                f"  - {entry.member.name} (id: {entry.member.id}): "
                f"{format_money(to_cents(entry.balance), symbol)}"
            )
        return "\n".join(lines)
    except SplitLedgerError as e:
        return _error(e)


@mcp_app.tool()
def list_settlements(group_id: int) -> str:
    """Suggest the transfers that would settle a group.

    Args:
        group_id: The group to settle.
    """
    try:
        service = _ensure_service()
        symbol = service.settings.currency_symbol
        transfers = service.get_settlements(group_id)

        if not transfers:
            return "Everyone is settled up."

        lines = [f"Suggested transfers ({len(transfers)}):"]
        for t in transfers:
            lines.append(
                f"  - {t.from_member.name} pays {t.to_member.name} "
                f"{format_money(to_cents(t.amount), symbol)}"
            )
        return "\n".join(lines)
    except SplitLedgerError as e:
        return _error(e)


@mcp_app.tool()
def list_expenses(group_id: int) -> str:
    """List a group's expenses with their settlement status.

    Args:
        group_id: The group whose expenses to list.
    """
    try:
        service = _ensure_service()
        symbol = service.settings.currency_symbol
        expenses = service.list_expenses(group_id)

        if not expenses:
            return "No expenses recorded."

        lines = [f"Expenses ({len(expenses)} total):"]
        for exp in expenses:
            status = "SETTLED" if exp.settled else "OPEN"
            lines.append(
                f"  [{exp.id}] {exp.title} | paid by {exp.paid_by.name} | "
                f"{format_money(exp.amount_cents, symbol)} | "
                f"outstanding {format_money(exp.outstanding_cents, symbol)} | {status}"
            )
        return "\n".join(lines)
    except SplitLedgerError as e:
        return _error(e)


@mcp_app.tool()
def settle_expense(expense_id: int, member_id: int, amount: str | None = None) -> str:
    """Record a payment against an expense.

    Args:
        expense_id: The expense being paid back.
        member_id: The member who made the payment.
        amount: Amount paid, e.g. "12.50". Omit to pay the full expense amount.
    """
    try:
        service = _ensure_service()
        symbol = service.settings.currency_symbol
        expense = service.settle_expense(expense_id, member_id, amount)

        if expense.settled:
            return (
                f"Payment recorded. Expense [{expense.id}] {expense.title} is settled."
            )
        return (
            f"Payment recorded for [{expense.id}] {expense.title}. "
            f"Outstanding: {format_money(expense.outstanding_cents, symbol)}"
        )
    except SplitLedgerError as e:
        return _error(e)


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def settle_up_workflow() -> str:
    """Orchestration instructions for settling a group."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")
