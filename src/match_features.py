"""
Features describing one (bank transaction, ledger entry) candidate pair.

The field order of MatchFeatures is the vector order the classifier was
trained on. FEATURE_NAMES is read from the dataclass so the two cannot
drift apart.
"""

import json
import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from statement_models import LedgerEntry, NormalizedTransaction
from text_normalizer import normalize_text, text_similarity

logger = logging.getLogger(__name__)

AMOUNT_NORMALIZER = 100000.0
MAX_DATE_DIFF_DAYS = 30.0


@dataclass(frozen=True)
class MatchFeatures:
    amount_difference: Optional[float] = None
    date_diff_days: Optional[float] = None
    text_similarity: Optional[float] = None
    amount_ratio: Optional[float] = None
    same_sense: Optional[float] = None
    reference_match: Optional[float] = None
    is_round_number: Optional[float] = None
    is_month_end: Optional[float] = None
    day_of_week_bt: Optional[float] = None
    day_of_week_gl: Optional[float] = None
    historical_match_rate: Optional[float] = None
    avg_days_historical: Optional[float] = None

    def to_array(self) -> List[float]:
        """Feature vector; missing values become 0.0."""
        return [_nvl(getattr(self, name)) for name in FEATURE_NAMES]

    @staticmethod
    def feature_names() -> List[str]:
        return list(FEATURE_NAMES)

    def to_map(self) -> Dict[str, float]:
        return dict(zip(FEATURE_NAMES, self.to_array()))

    @classmethod
    def from_map(cls, values: Dict) -> "MatchFeatures":
        return cls(**{name: _coerce(values.get(name)) for name in FEATURE_NAMES})

    def to_json(self) -> str:
        return json.dumps(self.to_map())

    @classmethod
    def from_json(cls, raw: str) -> "MatchFeatures":
        return cls.from_map(json.loads(raw) or {})

    def normalized(self) -> "MatchFeatures":
        """Scale unbounded features for the classifier input."""
        values = self.to_map()
        values["amount_difference"] = min(values["amount_difference"] / AMOUNT_NORMALIZER, 1.0)
        values["date_diff_days"] = min(values["date_diff_days"], MAX_DATE_DIFF_DAYS)
        return MatchFeatures(**values)


FEATURE_NAMES: Tuple[str, ...] = tuple(f.name for f in fields(MatchFeatures))


def _nvl(value: Optional[float]) -> float:
    return 0.0 if value is None else float(value)


def _coerce(value) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float, Decimal)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


class HistoryProvider(Protocol):
    def match_rate(self, bank_account: Optional[str], ledger_account: Optional[str]) -> Optional[float]: ...

    def avg_days(self, bank_account: Optional[str], ledger_account: Optional[str]) -> Optional[float]: ...


def _flag(condition: bool) -> float:
    return 1.0 if condition else 0.0


class FeatureExtractor:
    def __init__(self, history: Optional[HistoryProvider] = None, config: Optional[Dict] = None):
        cfg = config or {}
        self.history = history
        self.default_match_rate = float(cfg.get("default_match_rate", 0.5))
        self.default_avg_days = float(cfg.get("default_avg_days", 30.0))

    def extract(self, txn: NormalizedTransaction, entry: LedgerEntry) -> MatchFeatures:
        bank_amount = abs(txn.amount)
        ledger_signed = entry.signed_amount
        ledger_amount = abs(ledger_signed)

        if ledger_amount == 0:
            ratio = 0.0
        else:
            ratio = round(float(bank_amount / ledger_amount), 4)

        rate, avg_days = self._history(txn.account_number, entry.account_number)

        return MatchFeatures(
            amount_difference=float(abs(bank_amount - ledger_amount)),
            date_diff_days=float(abs((txn.transaction_date - entry.entry_date).days)),
            text_similarity=text_similarity(txn.description, entry.description),
            amount_ratio=ratio,
            # money in on the bank side is a debit on the bank ledger account
            same_sense=_flag((txn.amount > 0) == (entry.debit_amount > 0)),
            reference_match=_flag(self._references_match(txn.bank_reference, entry.reference)),
            is_round_number=_flag(bank_amount % 1000 == 0),
            is_month_end=_flag(txn.transaction_date.day >= 28),
            day_of_week_bt=float(txn.transaction_date.isoweekday()),
            day_of_week_gl=float(entry.entry_date.isoweekday()),
            historical_match_rate=rate,
            avg_days_historical=avg_days,
        )

    def extract_batch(self, pairs: Iterable[Tuple[NormalizedTransaction, LedgerEntry]]) -> List[MatchFeatures]:
        results = []
        for txn, entry in pairs:
            try:
                results.append(self.extract(txn, entry))
            except (ArithmeticError, TypeError, ValueError) as e:
                logger.warning("Feature extraction failed for ledger entry %s: %s", entry.entry_id, e)
        return results

    @staticmethod
    def _references_match(bank_ref: Optional[str], ledger_ref: Optional[str]) -> bool:
        a, b = normalize_text(bank_ref), normalize_text(ledger_ref)
        return bool(a) and a == b

    def _history(self, bank_account: Optional[str], ledger_account: Optional[str]) -> Tuple[float, float]:
        rate, days = None, None
        if self.history is not None:
            rate = self.history.match_rate(bank_account, ledger_account)
            days = self.history.avg_days(bank_account, ledger_account)
        return (self.default_match_rate if rate is None else float(rate),
                self.default_avg_days if days is None else float(days))
