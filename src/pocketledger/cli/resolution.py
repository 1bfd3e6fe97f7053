"""CLI helpers for resolving names, and for wiring the oracle from settings."""

from __future__ import annotations

import click

from pocketledger.config import Settings
from pocketledger.domain.account import BankAccountService
from pocketledger.domain.categorization import (
    CategorizationAdapter,
    StatementExtractor,
    SuggestionCascade,
)
from pocketledger.domain.ledger import LedgerService
from pocketledger.domain.oracle import GeminiOracle
from pocketledger.utils.resolver import resolve_bank_account, resolve_ledger


def resolve_bank_or_exit(
    ctx: click.Context, account_service: BankAccountService, account: str | int
) -> int:
    """Resolve bank account name, number or ID, or exit with a CLI error.

    This keeps error messaging and exit behavior consistent across commands.
    """
    try:
        return resolve_bank_account(account_service, account)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)


def resolve_ledger_or_exit(ctx: click.Context, ledger_service: LedgerService, ledger: str | int) -> int:
    """Resolve ledger name or ID, or exit with a CLI error."""
    try:
        return resolve_ledger(ledger_service, ledger)
    except ValueError as exc:
        click.echo(f"Error: {exc}", err=True)
        ctx.exit(1)


def build_oracle(settings: Settings) -> GeminiOracle:
    return GeminiOracle(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout=settings.oracle_timeout,
        retries=settings.oracle_retries,
    )


def build_cascade(ctx: click.Context) -> SuggestionCascade:
    """Suggestion cascade for the current user; the oracle may be unconfigured."""
    db = ctx.obj["db"]
    user_id = ctx.obj["user_id"]
    adapter = CategorizationAdapter(db, build_oracle(ctx.obj["settings"]), user_id)
    return SuggestionCascade(db, adapter, user_id)


def build_extractor(ctx: click.Context) -> StatementExtractor:
    return StatementExtractor(build_oracle(ctx.obj["settings"]))
