"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, including the cents <-> Decimal
money conversion and the JSON encoding of import batch items.
"""

import json
from decimal import Decimal
from typing import Any, Optional

from pocketledger.domain import entities as domain
from pocketledger.database.models import (
    BankAccount as ORMBankAccount,
    Ledger as ORMLedger,
    Transaction as ORMTransaction,
    SharedTransaction as ORMSharedTransaction,
    TransactionMapping as ORMTransactionMapping,
    ImportBatch as ORMImportBatch,
)
from pocketledger.utils.amount_parser import from_minor_units


def _money(cents: Optional[int]) -> Optional[Decimal]:
    return None if cents is None else from_minor_units(cents)


def bank_account_to_domain(orm_account: ORMBankAccount) -> domain.BankAccount:
    """Convert SQLAlchemy BankAccount model to domain BankAccount entity."""
    return domain.BankAccount(
        id=orm_account.id,
        user_id=orm_account.user_id,
        name=orm_account.name,
        account_number=orm_account.account_number,
        account_type=domain.AccountType(orm_account.account_type),
        opening_balance=from_minor_units(orm_account.opening_balance_cents),
        current_balance=from_minor_units(orm_account.current_balance_cents),
        active=orm_account.active,
        created_at=orm_account.created_at,
    )


def ledger_to_domain(orm_ledger: ORMLedger) -> domain.Ledger:
    """Convert SQLAlchemy Ledger model to domain Ledger entity."""
    return domain.Ledger(
        id=orm_ledger.id,
        user_id=orm_ledger.user_id,
        name=orm_ledger.name,
        ledger_type=domain.LedgerType(orm_ledger.ledger_type),
        current_balance=from_minor_units(orm_ledger.current_balance_cents),
        created_at=orm_ledger.created_at,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        user_id=orm_transaction.user_id,
        date=orm_transaction.date,
        direction=domain.Direction(orm_transaction.direction),
        amount=from_minor_units(orm_transaction.amount_cents),
        description=orm_transaction.description,
        narration=orm_transaction.narration,
        bank_account_id=orm_transaction.bank_account_id,
        ledger_id=orm_transaction.ledger_id,
        balance_after=_money(orm_transaction.balance_after_cents),
        reference_number=orm_transaction.reference_number,
        confirmed=orm_transaction.confirmed,
        source_tag=domain.SourceTag(orm_transaction.source_tag),
        idempotency_key=orm_transaction.idempotency_key,
        ai_suggested=orm_transaction.ai_suggested,
        created_at=orm_transaction.created_at,
    )


def past_transaction_to_domain(orm_transaction: ORMTransaction) -> domain.PastTransaction:
    """Convert a Transaction row to the history view used by the matcher."""
    ledger = orm_transaction.ledger
    return domain.PastTransaction(
        description=orm_transaction.description,
        narration=orm_transaction.narration,
        ledger_id=orm_transaction.ledger_id,
        ledger_name=ledger.name if ledger is not None else None,
    )


def shared_transaction_to_domain(orm_shared: ORMSharedTransaction) -> domain.SharedTransaction:
    """Convert SQLAlchemy SharedTransaction model to domain entity."""
    return domain.SharedTransaction(
        id=orm_shared.id,
        transaction_id=orm_shared.transaction_id,
        created_by_user_id=orm_shared.created_by_user_id,
        shared_with_user_id=orm_shared.shared_with_user_id,
        split_amount=from_minor_units(orm_shared.split_amount_cents),
        split_percentage=Decimal(orm_shared.split_percentage),
        affects_bank=orm_shared.affects_bank,
        notes=orm_shared.notes,
        status=domain.ShareStatus(orm_shared.status),
        created_at=orm_shared.created_at,
        confirmed_at=orm_shared.confirmed_at,
    )


def transaction_mapping_to_domain(orm_mapping: ORMTransactionMapping) -> domain.TransactionMapping:
    """Convert SQLAlchemy TransactionMapping model to domain entity."""
    return domain.TransactionMapping(
        id=orm_mapping.id,
        user_id=orm_mapping.user_id,
        particulars_pattern=orm_mapping.particulars_pattern,
        ledger_id=orm_mapping.ledger_id,
        narration_template=orm_mapping.narration_template,
        confidence_score=orm_mapping.confidence_score,
        usage_count=orm_mapping.usage_count,
        last_used_at=orm_mapping.last_used_at,
        ledger_name=orm_mapping.ledger.name if orm_mapping.ledger is not None else None,
    )


def extracted_to_dict(item: domain.ExtractedTransaction) -> dict[str, Any]:
    """Encode an import item for JSON storage."""
    return {
        "date": item.date,
        "description": item.description,
        "amount": str(item.amount),
        "direction": item.direction.value,
        "narration": item.narration,
        "balance_after": None if item.balance_after is None else str(item.balance_after),
        "reference_number": item.reference_number,
        "ledger_suggestion": item.ledger_suggestion,
        "confidence": item.confidence,
    }


def extracted_from_dict(data: dict[str, Any]) -> domain.ExtractedTransaction:
    """Decode an import item stored by extracted_to_dict."""
    balance = data.get("balance_after")
    return domain.ExtractedTransaction(
        date=data["date"],
        description=data["description"],
        amount=Decimal(data["amount"]),
        direction=domain.Direction(data["direction"]),
        narration=data.get("narration"),
        balance_after=None if balance is None else Decimal(balance),
        reference_number=data.get("reference_number"),
        ledger_suggestion=data.get("ledger_suggestion"),
        confidence=float(data.get("confidence") or 0.0),
    )


def detected_bank_to_json(bank: Optional[domain.DetectedBank]) -> Optional[str]:
    if bank is None:
        return None
    return json.dumps(
        {
            "bank_name": bank.bank_name,
            "account_number": bank.account_number,
            "ifsc_code": bank.ifsc_code,
            "statement_period": bank.statement_period,
        }
    )


def import_batch_to_domain(orm_batch: ORMImportBatch) -> domain.ImportBatch:
    """Convert SQLAlchemy ImportBatch model to domain entity."""
    detected = None
    if orm_batch.detected_bank_json:
        detected = domain.DetectedBank(**json.loads(orm_batch.detected_bank_json))
    return domain.ImportBatch(
        id=orm_batch.id,
        user_id=orm_batch.user_id,
        state=orm_batch.state,
        cursor=orm_batch.cursor,
        bank_account_id=orm_batch.bank_account_id,
        source_tag=domain.SourceTag(orm_batch.source_tag),
        items=[extracted_from_dict(d) for d in json.loads(orm_batch.items_json)],
        posted_indexes=frozenset(json.loads(orm_batch.posted_json or "[]")),
        detected_bank=detected,
        created_at=orm_batch.created_at,
    )
