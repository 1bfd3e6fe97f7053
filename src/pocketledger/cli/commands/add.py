"""Add transaction command."""

import click

from pocketledger.cli.error_handling import handle_domain_error
from pocketledger.cli.resolution import resolve_bank_or_exit, resolve_ledger_or_exit
from pocketledger.domain.account import BankAccountService
from pocketledger.domain.entities import Direction, SourceTag, TransactionDraft
from pocketledger.domain.errors import DomainError
from pocketledger.domain.ledger import LedgerService
from pocketledger.domain.posting import LedgerPostingService
from pocketledger.utils.amount_parser import parse_amount
from pocketledger.utils.date_parser import parse_date


@click.command("add")
@click.option("--bank", help="Bank account name, number or ID (omit for cash)")
@click.option(
    "--date",
    default="today",
    show_default=True,
    help="Transaction date (YYYY-MM-DD, DD/MM/YYYY or relative like 'today', 'yesterday')",
)
@click.option(
    "--amount", required=True, help="Signed amount: negative is a debit (e.g., -45.00 or 1000)"
)
@click.option("--description", required=True, help="Transaction description")
@click.option("--narration", help="Cleaned-up display text")
@click.option("--ledger", help="Ledger name or ID")
@click.option("--reference", help="Reference number")
@click.option("--unconfirmed", is_flag=True, help="Record without touching balances until confirmed")
@click.pass_context
def add_transaction(
    ctx,
    bank: str | None,
    date: str,
    amount: str,
    description: str,
    narration: str | None,
    ledger: str | None,
    reference: str | None,
    unconfirmed: bool,
):
    """Add a bank or cash transaction manually.

    Examples:
        pocketledger add --bank "HDFC Savings" --amount -45.00 --description "Grocery Store" --ledger Groceries
        pocketledger add --amount -120 --description "Taxi" --ledger Travel
        pocketledger add --amount 500 --description "Refund" --unconfirmed
    """
    db = ctx.obj["db"]
    user_id = ctx.obj["user_id"]
    posting = LedgerPostingService(db, user_id)

    bank_account_id = None
    if bank is not None:
        bank_account_id = resolve_bank_or_exit(ctx, BankAccountService(db, user_id), bank)

    ledger_id = None
    if ledger is not None:
        ledger_id = resolve_ledger_or_exit(ctx, LedgerService(db, user_id), ledger)

    try:
        txn_date = parse_date(date)
    except ValueError as e:
        click.echo(f"Error: Invalid date format: {e}", err=True)
        ctx.exit(1)

    try:
        signed = parse_amount(amount)
    except ValueError as e:
        click.echo(f"Error: Invalid amount format: {e}", err=True)
        ctx.exit(1)

    draft = TransactionDraft(
        date=txn_date.isoformat(),
        direction=Direction.DEBIT if signed < 0 else Direction.CREDIT,
        amount=abs(signed),
        description=description,
        narration=narration,
        reference_number=reference,
        source_tag=SourceTag.MANUAL,
    )

    try:
        if bank_account_id is None:
            txn = posting.post_cash(draft, ledger_id=ledger_id, confirmed=not unconfirmed)
        else:
            txn = posting.post(
                draft, ledger_id=ledger_id, bank_account_id=bank_account_id, confirmed=not unconfirmed
            )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Created transaction {txn.id}")
    click.echo(f"  Date: {txn.date}")
    click.echo(f"  Amount: {txn.signed_amount:,.2f} ({txn.direction.value})")
    click.echo(f"  Account: {'cash' if txn.bank_account_id is None else txn.bank_account_id}")
    if ledger is not None:
        click.echo(f"  Ledger: {ledger}")
    if not txn.confirmed:
        click.echo("  Unconfirmed: balances change when it is confirmed")


def register_commands(cli):
    """Register add command with main CLI."""
    cli.add_command(add_transaction)
