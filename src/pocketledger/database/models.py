"""SQLAlchemy models for pocketledger database.

Money is stored as integer cents so that server-side balance increments are
exact on every backend, SQLite included.
"""

from datetime import datetime, UTC
from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    DateTime,
    Date,
    Float,
    Boolean,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(UTC)


class BankAccount(Base):
    """Bank account model."""

    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    account_number = Column(String, nullable=False, default="")
    account_type = Column(String, nullable=False, default="Savings")
    opening_balance_cents = Column(BigInteger, nullable=False, default=0)
    current_balance_cents = Column(BigInteger, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=_now, nullable=False)

    transactions = relationship("Transaction", back_populates="bank_account")


class Ledger(Base):
    """Ledger model."""

    __tablename__ = "ledgers"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    ledger_type = Column(String, nullable=False)
    current_balance_cents = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_ledger_user_name"),)

    transactions = relationship("Transaction", back_populates="ledger")


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    date = Column(Date, nullable=False)
    direction = Column(String, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    description = Column(String, nullable=False)
    narration = Column(String, nullable=True)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=True)
    ledger_id = Column(Integer, ForeignKey("ledgers.id"), nullable=True)
    balance_after_cents = Column(BigInteger, nullable=True)
    reference_number = Column(String, nullable=True)
    confirmed = Column(Boolean, nullable=False, default=False)
    source_tag = Column(String, nullable=False, default="manual")
    idempotency_key = Column(String, nullable=True)
    ai_suggested = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    # NULL keys never collide, so only keyed posts are deduplicated
    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_user_idempotency_key"),
    )

    bank_account = relationship("BankAccount", back_populates="transactions")
    ledger = relationship("Ledger", back_populates="transactions")
    shares = relationship("SharedTransaction", back_populates="transaction")


class SharedTransaction(Base):
    """Split of a transaction with another user."""

    __tablename__ = "shared_transactions"

    id = Column(Integer, primary_key=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False)
    created_by_user_id = Column(String, nullable=False, index=True)
    shared_with_user_id = Column(String, nullable=False, index=True)
    split_amount_cents = Column(BigInteger, nullable=False)
    split_percentage = Column(String, nullable=False)
    affects_bank = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=_now, nullable=False)
    confirmed_at = Column(DateTime, nullable=True)

    transaction = relationship("Transaction", back_populates="shares")


class TransactionMapping(Base):
    """Learned exact-description to ledger mapping."""

    __tablename__ = "transaction_mappings"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False)
    particulars_pattern = Column(String, nullable=False)
    ledger_id = Column(Integer, ForeignKey("ledgers.id"), nullable=False)
    narration_template = Column(String, nullable=True)
    confidence_score = Column(Float, nullable=False, default=0.0)
    usage_count = Column(Integer, nullable=False, default=1)
    last_used_at = Column(DateTime, default=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "particulars_pattern", name="uq_mapping_user_pattern"),
    )

    ledger = relationship("Ledger")


class ImportBatch(Base):
    """Statement import under review, with its resume cursor."""

    __tablename__ = "import_batches"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    state = Column(String, nullable=False)
    cursor = Column(Integer, nullable=False, default=0)
    bank_account_id = Column(Integer, ForeignKey("bank_accounts.id"), nullable=True)
    source_tag = Column(String, nullable=False, default="upload")
    items_json = Column(Text, nullable=False)
    posted_json = Column(Text, nullable=False, default="[]")
    detected_bank_json = Column(Text, nullable=True)
    created_at = Column(DateTime, default=_now, nullable=False)


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
