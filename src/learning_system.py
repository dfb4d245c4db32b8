import json
import logging
from typing import Dict, Optional

import pandas as pd

from match_features import FEATURE_NAMES, MatchFeatures
from prediction_store import PredictionStore
from statement_models import PredictionLogEntry, TrainingExample

logger = logging.getLogger(__name__)


class MatchLearningSystem:
    """Turns validated predictions into training data and pair statistics.

    Also serves as the history provider of FeatureExtractor: match_rate and
    avg_days answer from the examples recorded for a (bank, ledger) account
    pair.
    """

    def __init__(self, store: PredictionStore, min_examples: int = 50):
        self.store = store
        self.min_examples = min_examples

    def record_feedback(self, log_id: int, accepted: bool,
                        rejection_reason: Optional[str] = None) -> TrainingExample:
        """Record the human decision on a logged prediction."""
        entry: PredictionLogEntry = self.store.record_outcome(log_id, accepted)
        example = TrainingExample(
            features=entry.features,
            accepted=bool(accepted),
            model_ref=entry.model_ref,
            prediction_confidence=entry.confidence,
            bank_account=entry.bank_account,
            ledger_account=entry.ledger_account,
            rejection_reason=None if accepted else rejection_reason,
        )
        self.store.add_training_example(example)
        logger.info("Feedback on prediction %s: %s (predicted %s)",
                    log_id, "accepted" if accepted else "rejected", entry.predicted_match)
        return example

    def training_frame(self, bank_account: Optional[str] = None,
                       ledger_account: Optional[str] = None) -> pd.DataFrame:
        """Feature columns in vector order plus the 0/1 label."""
        examples = self.store.list_training_examples(bank_account, ledger_account)
        rows = []
        for ex in examples:
            row = MatchFeatures.from_map(ex.features).to_map()
            row["label"] = ex.label
            rows.append(row)
        return pd.DataFrame(rows, columns=list(FEATURE_NAMES) + ["label"])

    def export_training_data(self, output_file: str = "training_data.jsonl") -> int:
        """Write one JSON object per example; returns the count."""
        examples = self.store.list_training_examples()
        with open(output_file, "w", encoding="utf-8") as f:
            for ex in examples:
                item = {
                    "features": MatchFeatures.from_map(ex.features).to_map(),
                    "label": ex.label,
                    "bank_account": ex.bank_account,
                    "ledger_account": ex.ledger_account,
                    "model_ref": ex.model_ref,
                }
                f.write(json.dumps(item, ensure_ascii=False) + "\n")
        return len(examples)

    def get_training_stats(self) -> Dict:
        df = self.training_frame()
        total = len(df)
        positives = int(df["label"].sum()) if total else 0
        return {
            "total_examples": total,
            "positive_examples": positives,
            "negative_examples": total - positives,
            "positive_rate": round(positives / total, 4) if total else 0.0,
            "min_examples": self.min_examples,
            "ready_for_training": total >= self.min_examples,
            "real_world_accuracy": self.store.real_world_accuracy(),
            "average_latency_ms": self.store.average_latency(),
        }

    def match_rate(self, bank_account: Optional[str], ledger_account: Optional[str]) -> Optional[float]:
        if not bank_account or not ledger_account:
            return None
        df = self.training_frame(bank_account, ledger_account)
        if df.empty:
            return None
        return float(df["label"].mean())

    def avg_days(self, bank_account: Optional[str], ledger_account: Optional[str]) -> Optional[float]:
        """Mean date gap of the accepted matches for the pair."""
        if not bank_account or not ledger_account:
            return None
        df = self.training_frame(bank_account, ledger_account)
        accepted = df[df["label"] == 1]
        if accepted.empty:
            return None
        return round(float(accepted["date_diff_days"].mean()), 2)
