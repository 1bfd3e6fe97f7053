"""Transaction management commands."""

import click

from pocketledger.cli.error_handling import handle_domain_error
from pocketledger.cli.resolution import resolve_bank_or_exit, resolve_ledger_or_exit
from pocketledger.domain.account import BankAccountService
from pocketledger.domain.errors import DomainError
from pocketledger.domain.ledger import LedgerService
from pocketledger.domain.posting import LedgerPostingService
from pocketledger.utils.date_parser import get_date_range, parse_date


@click.group()
def transaction_group():
    """Manage transactions."""
    pass


@transaction_group.command("list")
@click.option("--start-date", help="Start date (inclusive)")
@click.option("--end-date", help="End date (inclusive)")
@click.option(
    "--period",
    type=click.Choice(["this-month", "this-year", "last-month", "last-year"]),
    help="Shortcut for a date range",
)
@click.option("--bank", help="Bank account name, number or ID")
@click.option("--ledger", help="Ledger name or ID")
@click.option("--uncategorized", is_flag=True, help="Only transactions without a ledger")
@click.option("--unconfirmed", is_flag=True, help="Only unconfirmed transactions")
@click.pass_context
def list_transactions(
    ctx,
    start_date: str | None,
    end_date: str | None,
    period: str | None,
    bank: str | None,
    ledger: str | None,
    uncategorized: bool,
    unconfirmed: bool,
):
    """List transactions, newest first.

    Examples:
        pocketledger transaction list --period this-month
        pocketledger transaction list --bank "HDFC Savings" --uncategorized
    """
    db = ctx.obj["db"]
    user_id = ctx.obj["user_id"]

    if period and (start_date or end_date):
        click.echo("Error: Use either --period or --start-date/--end-date, not both", err=True)
        ctx.exit(1)

    start = end = None
    try:
        if period:
            start, end = get_date_range(period)
        if start_date:
            start = parse_date(start_date)
        if end_date:
            end = parse_date(end_date)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    bank_account_id = resolve_bank_or_exit(ctx, BankAccountService(db, user_id), bank) if bank else None
    ledger_service = LedgerService(db, user_id)
    ledger_id = resolve_ledger_or_exit(ctx, ledger_service, ledger) if ledger else None

    transactions = db.list_transactions(
        user_id,
        start_date=start,
        end_date=end,
        ledger_id=ledger_id,
        bank_account_id=bank_account_id,
        uncategorized=uncategorized,
        confirmed=False if unconfirmed else None,
    )
    if not transactions:
        click.echo("No transactions found.")
        return

    names = {led.id: led.name for led in ledger_service.list_ledgers()}
    for txn in transactions:
        flag = " " if txn.confirmed else "?"
        ledger_name = names.get(txn.ledger_id, "Uncategorized")
        text = txn.narration or txn.description
        click.echo(
            f"{flag}{txn.id:5d} | {txn.date} | {txn.signed_amount:>12,.2f} | {ledger_name:18s} | {text}"
        )


@transaction_group.command("confirm")
@click.argument("transaction_ids", nargs=-1, required=True, type=int)
@click.pass_context
def confirm_transactions(ctx, transaction_ids: tuple[int, ...]):
    """Confirm provisional transactions, applying their balance effect."""
    service = LedgerPostingService(ctx.obj["db"], ctx.obj["user_id"])

    failed = False
    for txn_id in dict.fromkeys(transaction_ids):
        try:
            service.confirm(txn_id)
            click.echo(f"✓ Transaction {txn_id} confirmed")
        except DomainError as e:
            failed = True
            click.echo(f"✗ Transaction {txn_id}: {e}", err=True)
    if failed:
        ctx.exit(1)


@transaction_group.command("categorize")
@click.argument("transaction_id", type=int)
@click.argument("ledger", metavar="LEDGER")
@click.pass_context
def categorize_transaction(ctx, transaction_id: int, ledger: str):
    """Assign a ledger to an uncategorized transaction.

    Example:
        pocketledger transaction categorize 12 Groceries
    """
    db = ctx.obj["db"]
    user_id = ctx.obj["user_id"]
    ledger_id = resolve_ledger_or_exit(ctx, LedgerService(db, user_id), ledger)

    try:
        LedgerPostingService(db, user_id).assign_ledger(transaction_id, ledger_id)
        click.echo(f"Transaction {transaction_id} categorized as '{ledger}'")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register transaction commands with main CLI."""
    cli.add_command(transaction_group, name="transaction")
