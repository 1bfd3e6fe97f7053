"""Statement import and review commands."""

from pathlib import Path

import click

from pocketledger.cli.error_handling import handle_domain_error
from pocketledger.cli.resolution import (
    build_cascade,
    build_extractor,
    resolve_bank_or_exit,
    resolve_ledger_or_exit,
)
from pocketledger.domain.errors import DomainError
from pocketledger.domain.import_review import ImportStep, ReviewOrchestrator
from pocketledger.domain.ledger import UNCATEGORIZED, LedgerService
from pocketledger.utils.file_loader import load_statement, mime_type_for

REVIEW_CHOICES = {
    "c": "confirm",
    "s": "skip",
    "p": "previous",
    "l": "set ledger",
    "n": "new ledger",
    "a": "save all remaining",
    "q": "quit (resume later)",
    "x": "cancel import",
}


def _choose_bank(ctx, orchestrator: ReviewOrchestrator, bank: str | None, cash: bool) -> None:
    if bank is not None:
        orchestrator.confirm_bank(resolve_bank_or_exit(ctx, orchestrator.accounts, bank))
        return
    if cash:
        orchestrator.confirm_bank(None)
        return

    detected = orchestrator.detected_bank
    if orchestrator.preselected_account_id is not None:
        account = orchestrator.accounts.get_account(orchestrator.preselected_account_id)
        click.echo(f"Detected bank matches '{account.name}' ({account.masked_number})")
        orchestrator.confirm_bank(account.id)
        return

    if detected is not None and detected.account_number:
        name = f"{detected.bank_name} - {detected.account_tail}"
        if click.confirm(f"No matching account. Create bank account '{name}'?", default=True):
            account_id = orchestrator.create_bank_from_detection()
            click.echo(f"Created bank account '{name}' (ID: {account_id})")
            return

    accounts = orchestrator.accounts.list_accounts(active_only=True)
    for acc in accounts:
        click.echo(f"  {acc.id:3d}: {acc.name} ({acc.masked_number})")
    answer = click.prompt("Bank account name or ID (or 'cash')")
    if answer.strip().lower() == "cash":
        orchestrator.confirm_bank(None)
    else:
        orchestrator.confirm_bank(resolve_bank_or_exit(ctx, orchestrator.accounts, answer))


def _report_batch(ctx, orchestrator: ReviewOrchestrator, create_ledgers: bool) -> None:
    result = orchestrator.save_all_remaining(create_missing_ledgers=create_ledgers)
    click.echo(f"Posted {len(result.posted)} transaction(s)")
    if result.halted:
        click.echo(
            f"Error: Stopped at item {result.failed_index + 1}: {result.error}. "
            f"Resume with: pocketledger import-resume {orchestrator.batch_id}",
            err=True,
        )
        ctx.exit(1)


def _show_current(orchestrator: ReviewOrchestrator) -> None:
    current = orchestrator.current()
    item = current.item
    click.echo("")
    click.echo(f"[{current.index + 1}/{current.total}] {item.date}  {item.direction.value}  {item.amount:,.2f}")
    click.echo(f"  {item.description}")
    suggestion = current.suggestion
    if suggestion is not None:
        marker = " (matched from history)" if suggestion.auto_matched else ""
        status = ""
        if not suggestion.resolved and suggestion.ledger_name != UNCATEGORIZED:
            status = " [new ledger]"
        click.echo(
            f"  Suggested: {suggestion.ledger_name}{status} "
            f"({suggestion.confidence:.0%}, {suggestion.source}){marker}"
        )
        if suggestion.narration:
            click.echo(f"  Narration: {suggestion.narration}")
    if current.posted:
        click.echo("  Already posted")


def _review(ctx, orchestrator: ReviewOrchestrator, save_all: bool, create_ledgers: bool) -> None:
    if save_all:
        _report_batch(ctx, orchestrator, create_ledgers)
        return

    ledger_service = LedgerService(orchestrator.db, orchestrator.user_id)
    prompt = ", ".join(f"[{k}] {v}" for k, v in REVIEW_CHOICES.items())

    while orchestrator.step is ImportStep.REVIEW:
        if not orchestrator.current().posted and orchestrator.current().suggestion is None:
            orchestrator.suggest_current()
        _show_current(orchestrator)
        choice = click.prompt(
            prompt, type=click.Choice(list(REVIEW_CHOICES)), default="c", show_choices=False
        )
        try:
            if choice == "c":
                txn = orchestrator.confirm_and_next()
                click.echo(f"✓ Posted transaction {txn.id}")
            elif choice == "s":
                orchestrator.skip()
            elif choice == "p":
                orchestrator.previous()
            elif choice == "l":
                name = click.prompt("Ledger name or ID")
                orchestrator.edit(ledger_id=resolve_ledger_or_exit(ctx, ledger_service, name))
            elif choice == "n":
                suggestion = orchestrator.current().suggestion
                name = click.prompt(
                    "New ledger name", default=suggestion.ledger_name if suggestion else None
                )
                ledger_id = orchestrator.create_ledger_for_current(name)
                click.echo(f"Using ledger '{name}' (ID: {ledger_id})")
            elif choice == "a":
                _report_batch(ctx, orchestrator, create_ledgers)
            elif choice == "q":
                click.echo(f"Paused. Resume with: pocketledger import-resume {orchestrator.batch_id}")
                return
            elif choice == "x":
                discarded = orchestrator.cancel()
                click.echo(f"Import cancelled, {discarded} unposted transaction(s) discarded")
                return
        except DomainError as e:
            click.echo(f"✗ {e}", err=True)

    if orchestrator.step is ImportStep.DONE:
        click.echo(f"\nImport complete: {len(orchestrator.posted)} of {orchestrator.total} posted")


@click.command("import")
@click.argument("statement_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--bank", help="Bank account name, number or ID the statement belongs to")
@click.option("--cash", is_flag=True, help="Import as cash transactions")
@click.option("--ai-extract", is_flag=True, help="Extract the file with Gemini instead of the local parser")
@click.option("--save-all", is_flag=True, help="Post everything without interactive review")
@click.option("--create-ledgers", is_flag=True, help="Create suggested ledgers that do not exist yet")
@click.pass_context
def import_statement(
    ctx,
    statement_file: str,
    bank: str | None,
    cash: bool,
    ai_extract: bool,
    save_all: bool,
    create_ledgers: bool,
):
    """Import a bank statement and review its transactions.

    Text, CSV and Excel files go through the local parser; PDFs are read page
    by page, or sent whole to Gemini with --ai-extract.

    Examples:
        pocketledger import statement.csv --bank "HDFC Savings"
        pocketledger import statement.pdf --ai-extract
        pocketledger import cash.txt --cash --save-all
    """
    if bank is not None and cash:
        click.echo("Error: Use either --bank or --cash, not both", err=True)
        ctx.exit(1)

    db = ctx.obj["db"]
    user_id = ctx.obj["user_id"]
    orchestrator = ReviewOrchestrator(
        db,
        user_id,
        cascade=build_cascade(ctx),
        extractor=build_extractor(ctx) if ai_extract else None,
    )

    try:
        if ai_extract:
            count = orchestrator.load_file(Path(statement_file).read_bytes(), mime_type_for(statement_file))
        else:
            count = orchestrator.load(load_statement(statement_file))
    except (DomainError, FileNotFoundError) as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Found {count} transaction(s) (batch {orchestrator.batch_id})")
    try:
        _choose_bank(ctx, orchestrator, bank, cash)
        _review(ctx, orchestrator, save_all, create_ledgers)
    except DomainError as e:
        handle_domain_error(ctx, e)


@click.command("import-resume")
@click.argument("batch_id", type=int)
@click.option("--bank", help="Bank account, if the batch is still waiting for one")
@click.option("--cash", is_flag=True, help="Import as cash, if the batch is still waiting for a bank")
@click.option("--save-all", is_flag=True, help="Post everything without interactive review")
@click.option("--create-ledgers", is_flag=True, help="Create suggested ledgers that do not exist yet")
@click.pass_context
def resume_import(ctx, batch_id: int, bank: str | None, cash: bool, save_all: bool, create_ledgers: bool):
    """Continue reviewing an interrupted import."""
    db = ctx.obj["db"]
    user_id = ctx.obj["user_id"]

    try:
        orchestrator = ReviewOrchestrator.resume(db, user_id, batch_id, cascade=build_cascade(ctx))
        if orchestrator.step is ImportStep.BANK_CONFIRM:
            _choose_bank(ctx, orchestrator, bank, cash)
        if orchestrator.step is not ImportStep.REVIEW:
            click.echo(f"Import batch {batch_id} is {orchestrator.step.value}; nothing to review")
            return
        click.echo(f"Resuming batch {batch_id} at item {orchestrator.cursor + 1} of {orchestrator.total}")
        _review(ctx, orchestrator, save_all, create_ledgers)
    except DomainError as e:
        handle_domain_error(ctx, e)


def register_commands(cli):
    """Register import commands with main CLI."""
    cli.add_command(import_statement)
    cli.add_command(resume_import)
