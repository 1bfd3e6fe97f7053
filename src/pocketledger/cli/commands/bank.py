"""Bank account management commands."""

import click

from pocketledger.cli.error_handling import handle_domain_error
from pocketledger.cli.resolution import resolve_bank_or_exit
from pocketledger.domain.account import BankAccountService
from pocketledger.domain.entities import AccountType
from pocketledger.domain.errors import DomainError
from pocketledger.utils.amount_parser import parse_amount


@click.group()
def bank_group():
    """Manage bank accounts."""
    pass


@bank_group.command("create")
@click.argument("name", metavar="ACCOUNT_NAME")
@click.option("--number", default="", help="Account number as printed on statements")
@click.option(
    "--type",
    "account_type",
    type=click.Choice([t.value for t in AccountType]),
    default=AccountType.SAVINGS.value,
    show_default=True,
    help="Account type",
)
@click.option("--opening-balance", default="0", help="Balance before the first recorded transaction")
@click.pass_context
def create_bank(ctx, name: str, number: str, account_type: str, opening_balance: str):
    """Create a new bank account.

    Examples:
        pocketledger bank create "HDFC Savings" --number 50100012345678 --opening-balance 2500
        pocketledger bank create "Amex" --type CreditCard
    """
    service = BankAccountService(ctx.obj["db"], ctx.obj["user_id"])

    try:
        balance = parse_amount(opening_balance)
    except ValueError as e:
        click.echo(f"Error: Invalid amount format: {e}", err=True)
        ctx.exit(1)

    try:
        account_id = service.create_account(
            name=name,
            account_number=number,
            account_type=AccountType(account_type),
            opening_balance=balance,
        )
        click.echo(f"Created bank account '{name}' (ID: {account_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@bank_group.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include deactivated accounts")
@click.pass_context
def list_banks(ctx, show_all: bool):
    """List bank accounts with their running balances."""
    service = BankAccountService(ctx.obj["db"], ctx.obj["user_id"])

    accounts = service.list_accounts(active_only=not show_all)
    if not accounts:
        click.echo("No bank accounts found.")
        return

    click.echo("\nBank accounts:")
    click.echo("-" * 80)
    for acc in accounts:
        status = "" if acc.active else " (inactive)"
        click.echo(
            f"ID: {acc.id:3d} | {acc.name:24s} | {acc.masked_number:>16s} | "
            f"{acc.account_type.value:10s} | {acc.current_balance:>12,.2f}{status}"
        )


@bank_group.command("deactivate")
@click.argument("account", metavar="ACCOUNT")
@click.pass_context
def deactivate_bank(ctx, account: str):
    """Deactivate a bank account, keeping its history.

    ACCOUNT can be an account name, number or ID.
    """
    service = BankAccountService(ctx.obj["db"], ctx.obj["user_id"])
    account_id = resolve_bank_or_exit(ctx, service, account)

    try:
        service.deactivate_account(account_id)
        click.echo(f"Deactivated bank account {account_id}")
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register bank commands with main CLI."""
    cli.add_command(bank_group, name="bank")
