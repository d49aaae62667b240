"""CLI for split-ledger using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

import typer
from rich.console import Console
from rich.table import Table

from .config import load_settings
from .db import Database
from .exceptions import IntegrityError, SplitLedgerError
from .mcp_server import run_server
from .models import ExpenseView
from .money import format_money, to_cents
from .service import LedgerService
from .ui import select_member_interactive

app = typer.Typer(
    name="split-ledger",
    help="Record shared expenses and work out who owes whom",
)
member_app = typer.Typer(help="Manage members")
group_app = typer.Typer(help="Manage groups")
expense_app = typer.Typer(help="Record and inspect expenses")

app.add_typer(member_app, name="member")
app.add_typer(group_app, name="group")
app.add_typer(expense_app, name="expense")

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def open_service(verbose: bool = False) -> Iterator[LedgerService]:
    """
    Load settings, open the database and map ledger errors to exit codes.

    Rejections (not found, validation) exit with 1; internal integrity
    failures are logged and exit with 2.
    """
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield LedgerService(settings, db)
    except IntegrityError as e:
        logger.error(f"Ledger integrity failure: {e.reason}")
        console.print(f"\n[bold red]Internal error:[/bold red] {e.reason}")
        if verbose:
            raise
        sys.exit(2)
    except SplitLedgerError as e:
        console.print(f"\n[bold yellow]⚠️  {e.reason}[/bold yellow]\n")
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def money(cents: int, symbol: str = "$", use_color: bool = True) -> str:
    """
    Format money in accounting style with alignment.

    Negative amounts use parentheses: ($85.02)
    Positive amounts have spaces:      $85.02
    """
    formatted = format_money(cents, symbol)
    if cents < 0:
        return f"[red]{formatted}[/red]" if use_color else formatted
    if use_color and cents > 0:
        return f" [green]{formatted}[/green] "
    return f" {formatted} "


def status_label(settled: bool) -> str:
    return "[green]settled[/green]" if settled else "[yellow]open[/yellow]"


def parse_split_option(value: str) -> tuple[int, str]:
    """Parse a ``MEMBER_ID=AMOUNT`` split option."""
    member, sep, amount = value.partition("=")
    if not sep or not member.strip().isdigit():
        raise typer.BadParameter(
            f"Invalid split {value!r}; expected MEMBER_ID=AMOUNT", param_hint="--split"
        )
    return int(member), amount.strip()


# ============================================================================
# Members
# ============================================================================


@member_app.command("add")
def member_add(
    name: str = typer.Argument(..., help="Display name"),
    email: str = typer.Argument(..., help="Email address"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Register a new member."""
    with open_service(verbose) as service:
        member = service.create_member(name, email)
        console.print(f"[green]✓ Created member {member.id}: {member.name}[/green]")


@member_app.command("list")
def member_list(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List all members."""
    with open_service(verbose) as service:
        table = Table(title="Members", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=6)
        table.add_column("Name", style="cyan")
        table.add_column("Email")
        for member in service.list_members():
            table.add_row(str(member.id), member.name, member.email)
        console.print(table)


@member_app.command("update")
def member_update(
    member_id: int = typer.Argument(..., help="Member ID"),
    name: str | None = typer.Option(None, "--name", help="New display name"),
    email: str | None = typer.Option(None, "--email", help="New email address"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Update a member's name or email."""
    with open_service(verbose) as service:
        member = service.update_member(member_id, name=name, email=email)
        console.print(
            f"[green]✓ Updated member {member.id}: {member.name} "
            f"<{member.email}>[/green]"
        )


# ============================================================================
# Groups
# ============================================================================


@group_app.command("create")
def group_create(
    name: str = typer.Argument(..., help="Group name"),
    creator: int = typer.Option(..., "--creator", help="ID of the creating member"),
    members: list[int] | None = typer.Option(
        None, "--member", "-m", help="Additional member ID (repeatable)"
    ),
    description: str | None = typer.Option(None, "--description", "-d"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a group. The creator is always a member."""
    with open_service(verbose) as service:
        group = service.create_group(
            name, creator, description=description, member_ids=members or []
        )
        console.print(
            f"[green]✓ Created group {group.id}: {group.name} "
            f"({len(group.member_ids)} members)[/green]"
        )


@group_app.command("add-member")
def group_add_member(
    group_id: int = typer.Argument(..., help="Group ID"),
    member_id: int = typer.Argument(..., help="Member ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add a member to a group."""
    with open_service(verbose) as service:
        if service.add_group_member(group_id, member_id):
            console.print(f"[green]✓ Added member {member_id}[/green]")
        else:
            console.print(
                f"[yellow]Member {member_id} is already in the group[/yellow]"
            )


@group_app.command("show")
def group_show(
    group_id: int = typer.Argument(..., help="Group ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a group and its members."""
    with open_service(verbose) as service:
        group = service.get_group(group_id)
        console.print(f"\n[bold]{group.name}[/bold] (group {group.id})")
        if group.description:
            console.print(f"  {group.description}")

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=6)
        table.add_column("Name", style="cyan")
        table.add_column("Email")
        for member in service.list_group_members(group_id):
            name = member.name
            if member.id == group.created_by:
                name += " [dim](creator)[/dim]"
            table.add_row(str(member.id), name, member.email)
        console.print(table)


# ============================================================================
# Expenses
# ============================================================================


@expense_app.command("add")
def expense_add(
    group_id: int = typer.Argument(..., help="Group ID"),
    title: str = typer.Argument(..., help="What the expense was for"),
    amount: str = typer.Argument(..., help="Total amount, e.g. 30.00"),
    paid_by: int = typer.Option(..., "--paid-by", "-p", help="ID of the payer"),
    split: list[str] | None = typer.Option(
        None,
        "--split",
        "-s",
        help="MEMBER_ID=AMOUNT share (repeatable); default splits evenly",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """
    Record an expense.

    Without --split the amount is divided evenly across the whole group.
    With --split the shares must add up to the amount.
    """
    splits = [parse_split_option(value) for value in split] if split else None
    with open_service(verbose) as service:
        expense = service.add_expense(group_id, title, amount, paid_by, splits)
        console.print(f"[green]✓ Added expense {expense.id}[/green]")
        display_expense(expense, service.settings.currency_symbol)


@expense_app.command("list")
def expense_list(
    group_id: int = typer.Argument(..., help="Group ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List a group's expenses, newest first."""
    with open_service(verbose) as service:
        expenses = service.list_expenses(group_id)
        symbol = service.settings.currency_symbol
        if not expenses:
            console.print("[yellow]No expenses recorded.[/yellow]")
            return

        table = Table(title="Expenses", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=6)
        table.add_column("Title", style="cyan", width=30)
        table.add_column("Paid by")
        table.add_column("Amount", justify="right", width=14)
        table.add_column("Paid back", justify="right", width=14)
        table.add_column("Status", justify="center")

        for expense in expenses:
            title = expense.title
            table.add_row(
                str(expense.id),
                title[:30] + "..." if len(title) > 30 else title,
                expense.paid_by.name,
                money(expense.amount_cents, symbol, use_color=False),
                money(expense.total_settled_cents, symbol, use_color=False),
                status_label(expense.settled),
            )
        console.print(table)


@expense_app.command("show")
def expense_show(
    expense_id: int = typer.Argument(..., help="Expense ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show an expense with its splits and settlements."""
    with open_service(verbose) as service:
        display_expense(
            service.get_expense(expense_id), service.settings.currency_symbol
        )


@expense_app.command("preview")
def expense_preview(
    group_id: int = typer.Argument(..., help="Group ID"),
    amount: str = typer.Argument(..., help="Total amount, e.g. 30.00"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show how an amount would be split evenly across a group."""
    with open_service(verbose) as service:
        symbol = service.settings.currency_symbol
        members = {m.id: m for m in service.list_group_members(group_id)}
        shares = service.split_evenly(amount, list(members))

        table = Table(title="Even split", show_header=True, header_style="bold magenta")
        table.add_column("Member", style="cyan")
        table.add_column("Owes", justify="right", width=14)
        for member_id, share in shares:
            table.add_row(
                members[member_id].name,
                money(to_cents(share), symbol, use_color=False),
            )
        console.print(table)


def display_expense(expense: ExpenseView, symbol: str = "$"):
    """Display an expense in a nice table format."""
    console.print(f"\n[bold]{expense.title}[/bold] (expense {expense.id})")
    console.print(f"  Group: {expense.group_name}")
    console.print(f"  Paid by: {expense.paid_by.name}")
    console.print(f"  Amount: {money(expense.amount_cents, symbol)}")
    status = status_label(expense.settled)
    console.print(f"  Status: {status}")

    table = Table(title="Splits", show_header=True, header_style="bold magenta")
    table.add_column("Member", style="cyan")
    table.add_column("Owes", justify="right", width=14)
    for split in expense.splits:
        table.add_row(
            split.member.name, money(split.amount_cents, symbol, use_color=False)
        )
    console.print(table)

    if expense.settlements:
        table = Table(title="Payments", show_header=True, header_style="bold magenta")
        table.add_column("Date", style="dim")
        table.add_column("Member", style="cyan")
        table.add_column("Amount", justify="right", width=14)
        for settlement in expense.settlements:
            table.add_row(
                settlement.settled_at.strftime("%Y-%m-%d %H:%M"),
                settlement.member.name,
                money(settlement.amount_cents, symbol, use_color=False),
            )
        console.print(table)

    console.print(
        f"  Paid back: {money(expense.total_settled_cents, symbol)} "
        f"Outstanding: {money(expense.outstanding_cents, symbol)}"
    )


# ============================================================================
# Balances and settlements
# ============================================================================


@app.command()
def balances(
    group_id: int = typer.Argument(..., help="Group ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show each member's net balance across unsettled expenses."""
    with open_service(verbose) as service:
        symbol = service.settings.currency_symbol
        table = Table(title="Balances", show_header=True, header_style="bold magenta")
        table.add_column("Member", style="cyan")
        table.add_column("Balance", justify="right", width=14)
        for entry in service.get_balances(group_id):
            table.add_row(entry.member.name, money(to_cents(entry.balance), symbol))
        console.print(table)
        console.print("[dim]Positive = is owed money, negative = owes money[/dim]")


@app.command()
def settlements(
    group_id: int = typer.Argument(..., help="Group ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show who should pay whom to settle the group."""
    with open_service(verbose) as service:
        transfers = service.get_settlements(group_id)
        symbol = service.settings.currency_symbol
        if not transfers:
            console.print("[green]✓ Everyone is settled up.[/green]")
            return

        table = Table(title="Settle up", show_header=True, header_style="bold magenta")
        table.add_column("From", style="cyan")
        table.add_column("To", style="cyan")
        table.add_column("Amount", justify="right", width=14)
        for transfer in transfers:
            table.add_row(
                transfer.from_member.name,
                transfer.to_member.name,
                money(to_cents(transfer.amount), symbol, use_color=False),
            )
        console.print(table)


@app.command()
def settle(
    expense_id: int = typer.Argument(..., help="Expense ID"),
    amount: str | None = typer.Argument(
        None, help="Amount paid; defaults to the full expense amount"
    ),
    member: int | None = typer.Option(
        None, "--member", "-m", help="ID of the paying member (prompted if omitted)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record a payment against an expense."""
    with open_service(verbose) as service:
        symbol = service.settings.currency_symbol
        if member is None:
            expense = service.get_expense(expense_id)
            member = select_member_interactive(
                service.list_group_members(expense.group_id),
                prompt=f"Who paid towards '{expense.title}'?",
            )
            if member is None:
                console.print("[yellow]No member selected.[/yellow]")
                return

        expense = service.settle_expense(expense_id, member, amount)
        if expense.settled:
            console.print(
                f"\n[bold green]✓ Expense {expense.id} is fully settled![/bold green]"
            )
        else:
            console.print(
                f"\n[green]✓ Payment recorded. Outstanding: "
                f"{money(expense.outstanding_cents, symbol)}[/green]"
            )


@app.command()
def mcp():
    """Start the MCP server (stdio transport)."""
    run_server()


if __name__ == "__main__":
    app()
