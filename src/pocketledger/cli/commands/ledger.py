"""Ledger management commands."""

import click

from pocketledger.cli.error_handling import handle_domain_error
from pocketledger.domain.entities import LedgerType
from pocketledger.domain.errors import DomainError
from pocketledger.domain.ledger import LedgerService


@click.group()
def ledger_group():
    """Manage ledgers."""
    pass


@ledger_group.command("create")
@click.argument("name", metavar="LEDGER_NAME")
@click.option(
    "--type",
    "ledger_type",
    type=click.Choice([t.value for t in LedgerType]),
    required=True,
    help="Ledger type",
)
@click.pass_context
def create_ledger(ctx, name: str, ledger_type: str):
    """Create a new ledger.

    Examples:
        pocketledger ledger create "Groceries" --type Expense
        pocketledger ledger create "Salary" --type Income
    """
    service = LedgerService(ctx.obj["db"], ctx.obj["user_id"])
    try:
        ledger_id = service.create_ledger(name, LedgerType(ledger_type))
        click.echo(f"Created {ledger_type} ledger '{name}' (ID: {ledger_id})")
    except DomainError as e:
        handle_domain_error(ctx, e)


@ledger_group.command("list")
@click.pass_context
def list_ledgers(ctx):
    """List ledgers with their running balances."""
    service = LedgerService(ctx.obj["db"], ctx.obj["user_id"])

    ledgers = service.list_ledgers()
    if not ledgers:
        click.echo("No ledgers found.")
        return

    click.echo("\nLedgers:")
    click.echo("-" * 60)
    for led in ledgers:
        click.echo(
            f"ID: {led.id:3d} | {led.name:24s} | {led.ledger_type.value:9s} | {led.current_balance:>12,.2f}"
        )


def register_commands(cli):
    """Register ledger commands with main CLI."""
    cli.add_command(ledger_group, name="ledger")
