"""Split and shared transaction commands."""

import click

from pocketledger.cli.error_handling import handle_domain_error
from pocketledger.domain.entities import SharedTransaction
from pocketledger.domain.errors import DomainError
from pocketledger.domain.settlement import SettlementService, SplitRequest, equal_splits
from pocketledger.utils.amount_parser import parse_amount


def parse_split(value: str) -> SplitRequest:
    """Parse ``USER:AMOUNT`` or ``USER:PCT%`` into a split request.

    Raises:
        ValueError: If the value is not in either form
    """
    user, sep, share = value.rpartition(":")
    if not sep or not user.strip() or not share.strip():
        raise ValueError(f"Split '{value}' must look like USER:AMOUNT or USER:PERCENT%")
    share = share.strip()
    if share.endswith("%"):
        return SplitRequest(user_id=user.strip(), percentage=parse_amount(share[:-1]))
    return SplitRequest(user_id=user.strip(), amount=parse_amount(share))


def _format_share(shared: SharedTransaction) -> str:
    return (
        f"{shared.id:4d} | txn {shared.transaction_id:<5d} | {shared.created_by_user_id} -> "
        f"{shared.shared_with_user_id} | {shared.split_amount:>10,.2f} ({shared.split_percentage}%) | "
        f"{shared.status.value}"
    )


@click.command("split")
@click.argument("transaction_id", type=int)
@click.option(
    "--with",
    "splits",
    multiple=True,
    required=True,
    help="USER:AMOUNT or USER:PERCENT%, or just USER with --equal (repeatable)",
)
@click.option("--equal", is_flag=True, help="Split evenly between you and the given users")
@click.option("--affects-bank", is_flag=True, help="The split moves bank money")
@click.option("--notes", help="Note shown to every counterparty")
@click.pass_context
def split_transaction(
    ctx, transaction_id: int, splits: tuple[str, ...], equal: bool, affects_bank: bool, notes: str | None
):
    """Propose splitting a transaction with other users.

    Examples:
        pocketledger split 12 --with alice:40 --with bob:25%
        pocketledger split 12 --with alice --with bob --equal
    """
    db = ctx.obj["db"]
    user_id = ctx.obj["user_id"]
    service = SettlementService(db)

    try:
        if equal:
            txn = db.get_transaction(user_id, transaction_id)
            if txn is None:
                click.echo(f"Error: Transaction {transaction_id} not found", err=True)
                ctx.exit(1)
            requests = equal_splits(txn.amount, [s.strip() for s in splits])
        else:
            requests = [parse_split(s) for s in splits]
        created = service.propose(user_id, transaction_id, requests, affects_bank=affects_bank, notes=notes)
    except (DomainError, ValueError) as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Proposed {len(created)} split(s) of transaction {transaction_id}:")
    for shared in created:
        click.echo(f"  {_format_share(shared)}")


@click.group()
def shared_group():
    """Review shared transactions."""
    pass


@shared_group.command("list")
@click.option("--history", "show_history", is_flag=True, help="Show answered shares instead")
@click.option("--limit", default=20, show_default=True, help="Number of history entries")
@click.pass_context
def list_shared(ctx, show_history: bool, limit: int):
    """List pending shares, received and sent."""
    service = SettlementService(ctx.obj["db"])
    user_id = ctx.obj["user_id"]

    if show_history:
        entries = service.history(user_id, limit=limit)
        if not entries:
            click.echo("No shared transaction history.")
        for shared in entries:
            click.echo(_format_share(shared))
        return

    received = service.list_pending_received(user_id)
    sent = service.list_pending_sent(user_id)
    if not received and not sent:
        click.echo("No pending shared transactions.")
        return
    if received:
        click.echo("\nWaiting for you:")
        for shared in received:
            click.echo(f"  {_format_share(shared)}")
    if sent:
        click.echo("\nWaiting for others:")
        for shared in sent:
            click.echo(f"  {_format_share(shared)}")


def _respond(ctx, shared_id: int, accept: bool) -> None:
    service = SettlementService(ctx.obj["db"])
    try:
        shared = service.respond(ctx.obj["user_id"], shared_id, accept)
        click.echo(f"Shared transaction {shared.id} {shared.status.value}")
    except DomainError as e:
        handle_domain_error(ctx, e)


@shared_group.command("confirm")
@click.argument("shared_id", type=int)
@click.pass_context
def confirm_shared(ctx, shared_id: int):
    """Accept a share addressed to you."""
    _respond(ctx, shared_id, True)


@shared_group.command("reject")
@click.argument("shared_id", type=int)
@click.pass_context
def reject_shared(ctx, shared_id: int):
    """Reject a share addressed to you."""
    _respond(ctx, shared_id, False)


def register_commands(cli):
    """Register split and shared commands with main CLI."""
    cli.add_command(split_transaction)
    cli.add_command(shared_group, name="shared")
