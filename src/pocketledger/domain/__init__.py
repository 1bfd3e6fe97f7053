"""Domain layer for pocketledger application.

Services are exported lazily: the database layer imports
``pocketledger.domain.entities``, and an eager import of the services here
would loop back into a half-initialized ``pocketledger.database``.
"""

_SERVICES = {
    "BankAccountService": "pocketledger.domain.account",
    "LedgerService": "pocketledger.domain.ledger",
    "LedgerPostingService": "pocketledger.domain.posting",
    "CategorizationAdapter": "pocketledger.domain.categorization",
    "StatementExtractor": "pocketledger.domain.categorization",
    "SuggestionCascade": "pocketledger.domain.categorization",
    "SettlementService": "pocketledger.domain.settlement",
    "ReviewOrchestrator": "pocketledger.domain.import_review",
}

__all__ = list(_SERVICES)


def __getattr__(name):
    if name in _SERVICES:
        from importlib import import_module

        return getattr(import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
