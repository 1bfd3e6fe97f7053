"""Main CLI entry point."""

import logging
from dataclasses import replace

import click

from pocketledger.config import DB_PATH_ENV, Settings
from pocketledger.database.factories import create_sqlite_database

# Import and register all commands at module level
from pocketledger.cli.commands import (
    add,
    bank,
    import_cmd,
    ledger,
    shared,
    transaction,
)


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help=f"Path to database file (overrides {DB_PATH_ENV} environment variable)",
    envvar=DB_PATH_ENV,
)
@click.option(
    "--user",
    "user_id",
    help="User the commands act as (overrides POCKETLEDGER_USER)",
    envvar="POCKETLEDGER_USER",
)
@click.option(
    "--gemini-api-key",
    help="Gemini API key for AI categorization and extraction",
    envvar="GEMINI_API_KEY",
)
@click.option("--verbose", "-v", is_flag=True, help="Log service activity to stderr")
@click.pass_context
def cli(ctx, db_path: str | None, user_id: str | None, gemini_api_key: str | None, verbose: bool):
    """pocketledger - Personal bank statement ledger.

    Import bank statements, categorize transactions into ledgers with help
    from your history and an optional AI assistant, and split expenses with
    other users.
    """
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = Settings.from_env()
    overrides = {}
    if db_path is not None:
        overrides["database_path"] = db_path
    if user_id:
        overrides["user_id"] = user_id
    if gemini_api_key:
        overrides["gemini_api_key"] = gemini_api_key
    settings = replace(settings, **overrides)
    ctx.obj["settings"] = settings
    ctx.obj["user_id"] = settings.user_id

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=settings.database_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db


# Register all commands
bank.register_commands(cli)
ledger.register_commands(cli)
add.register_commands(cli)
transaction.register_commands(cli)
import_cmd.register_commands(cli)
shared.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()
