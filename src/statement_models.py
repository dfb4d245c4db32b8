import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NormalizedTransaction:
    """One bank statement line, whatever the source format.

    amount is signed: positive = credit (money in), negative = debit.
    """
    transaction_date: date
    amount: Decimal
    value_date: Optional[date] = None
    description: str = ""
    bank_reference: Optional[str] = None
    counterparty_name: Optional[str] = None
    account_number: Optional[str] = None
    currency: Optional[str] = None
    balance_after: Optional[Decimal] = None
    additional_info: Optional[str] = None

    @property
    def is_credit(self) -> bool:
        return self.amount > 0

    @property
    def is_debit(self) -> bool:
        return self.amount < 0


@dataclass(frozen=True)
class LedgerEntry:
    entry_id: str
    entry_date: date
    debit_amount: Decimal = Decimal("0")
    credit_amount: Decimal = Decimal("0")
    description: str = ""
    reference: Optional[str] = None
    account_number: Optional[str] = None

    @property
    def signed_amount(self) -> Decimal:
        return self.debit_amount - self.credit_amount


@dataclass
class ParseResult:
    """Parser output plus what was dropped on the way."""
    format_name: str
    filename: str = ""
    transactions: List[NormalizedTransaction] = field(default_factory=list)
    skipped: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.transactions) + self.skipped

    def add(self, txn: NormalizedTransaction):
        self.transactions.append(txn)

    def skip(self, reason: str):
        self.skipped += 1
        self.warnings.append(reason)
        logger.warning("%s %s: %s", self.format_name, self.filename or "<stream>", reason)


@dataclass
class PredictionLogEntry:
    model_ref: str
    transaction_ref: str
    ledger_ref: str
    predicted_match: bool
    confidence: float
    features: Dict[str, float]
    latency_ms: int = 0
    bank_account: Optional[str] = None
    ledger_account: Optional[str] = None
    actual_outcome: Optional[bool] = None
    was_correct: Optional[bool] = None
    predicted_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    log_id: Optional[int] = None

    @property
    def is_validated(self) -> bool:
        return self.actual_outcome is not None

    def update_outcome(self, outcome: bool):
        if self.is_validated:
            raise ValueError(f"prediction {self.log_id} already validated")
        self.actual_outcome = bool(outcome)
        self.was_correct = self.predicted_match == self.actual_outcome


@dataclass
class TrainingExample:
    features: Dict[str, float]
    accepted: bool
    model_ref: Optional[str] = None
    prediction_confidence: Optional[float] = None
    bank_account: Optional[str] = None
    ledger_account: Optional[str] = None
    rejection_reason: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def label(self) -> int:
        return 1 if self.accepted else 0
