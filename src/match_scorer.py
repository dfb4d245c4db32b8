"""
Scores candidate (bank transaction, ledger entry) pairs.

With a trained classifier (anything exposing predict_proba, class 1 =
match) the confidence is its match probability. Without one a weighted
heuristic over the same features is used.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config_loader import DEFAULTS
from match_features import FeatureExtractor, MatchFeatures
from statement_models import LedgerEntry, NormalizedTransaction, PredictionLogEntry

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_THRESHOLD = 95.0


def build_explanation(features: MatchFeatures) -> List[str]:
    values = features.to_map()
    reasons: List[str] = []
    if features.amount_difference is not None and values["amount_difference"] < 100:
        reasons.append("amounts near-identical")
    if features.date_diff_days is not None and values["date_diff_days"] <= 3:
        reasons.append("dates close")
    if values["text_similarity"] > 0.7:
        reasons.append("descriptions similar")
    if values["reference_match"] > 0:
        reasons.append("references identical")
    return reasons


@dataclass
class MatchPrediction:
    transaction_ref: str
    ledger_ref: str
    confidence: Optional[float]
    predicted_match: bool
    features: MatchFeatures
    explanation: List[str] = field(default_factory=list)
    model_ref: str = ""
    latency_ms: int = 0
    log_id: Optional[int] = None

    def is_high_confidence(self) -> bool:
        return self.confidence is not None and self.confidence >= HIGH_CONFIDENCE_THRESHOLD


def transaction_ref(txn: NormalizedTransaction) -> str:
    return txn.bank_reference or f"{txn.transaction_date.isoformat()}:{txn.amount}"


def _linear(value: float, tolerance: float) -> float:
    if tolerance <= 0:
        return 1.0 if value == 0 else 0.0
    return max(0.0, 1.0 - value / tolerance)


def heuristic_score(features: MatchFeatures, cfg: Dict) -> float:
    weights = cfg.get("weights", DEFAULTS["scoring"]["weights"])
    tol = cfg.get("tolerances", DEFAULTS["scoring"]["tolerances"])
    values = features.to_map()

    parts = {
        "amount": _linear(values["amount_difference"], float(tol.get("amount", 1000.0))),
        "date": _linear(values["date_diff_days"], float(tol.get("days", 10))),
        "text": values["text_similarity"],
        "reference": values["reference_match"],
    }
    total_weight = sum(weights.get(k, 0.0) for k in parts) or 1.0
    score = 100.0 * sum(parts[k] * weights.get(k, 0.0) for k in parts) / total_weight
    if features.same_sense is not None and values["same_sense"] == 0.0:
        score *= 0.5
    return round(max(0.0, min(100.0, score)), 2)


class MatchScorer:
    def __init__(self, store=None, classifier=None, extractor: Optional[FeatureExtractor] = None,
                 config: Optional[Dict] = None):
        cfg = config or {}
        self.scoring = dict(DEFAULTS["scoring"], **cfg.get("scoring", {}))
        self.prefilter = dict(DEFAULTS["prefilter"], **cfg.get("prefilter", {}))
        self.store = store
        self.classifier = classifier
        self.extractor = extractor or FeatureExtractor(config=cfg.get("features"))
        self.model_ref = self.scoring.get("model_ref") or "heuristic-v1"
        self.log_failures = 0

    def score(self, features: MatchFeatures) -> Tuple[float, List[str]]:
        if self.classifier is not None:
            proba = self.classifier.predict_proba([features.to_array()])[0]
            confidence = round(float(proba[1]) * 100.0, 2)
        else:
            confidence = heuristic_score(features, self.scoring)
        return confidence, build_explanation(features)

    def _evaluate(self, txn: NormalizedTransaction, entry: LedgerEntry) -> MatchPrediction:
        started = time.perf_counter()
        features = self.extractor.extract(txn, entry)
        confidence, explanation = self.score(features)
        return MatchPrediction(
            transaction_ref=transaction_ref(txn),
            ledger_ref=entry.entry_id,
            confidence=confidence,
            predicted_match=confidence >= float(self.scoring.get("match_threshold", 50.0)),
            features=features,
            explanation=explanation,
            model_ref=self.model_ref,
            latency_ms=int((time.perf_counter() - started) * 1000),
        )

    def _log(self, prediction: MatchPrediction, txn: NormalizedTransaction, entry: LedgerEntry):
        if self.store is None:
            return
        try:
            prediction.log_id = self.store.log_prediction(PredictionLogEntry(
                model_ref=prediction.model_ref,
                transaction_ref=prediction.transaction_ref,
                ledger_ref=prediction.ledger_ref,
                predicted_match=prediction.predicted_match,
                confidence=prediction.confidence,
                features=prediction.features.to_map(),
                latency_ms=prediction.latency_ms,
                bank_account=txn.account_number,
                ledger_account=entry.account_number,
            ))
        except Exception:
            # the prediction is still returned to the caller
            self.log_failures += 1
            logger.exception("Failed to log prediction %s -> %s", prediction.transaction_ref, prediction.ledger_ref)

    def predict(self, txn: NormalizedTransaction, entry: LedgerEntry) -> MatchPrediction:
        prediction = self._evaluate(txn, entry)
        self._log(prediction, txn, entry)
        return prediction

    def is_reasonable_candidate(self, txn: NormalizedTransaction, entry: LedgerEntry) -> bool:
        ledger_amount = abs(entry.signed_amount)
        if ledger_amount == 0:
            return False
        ratio = float(abs(txn.amount) / ledger_amount)
        if ratio < float(self.prefilter["min_amount_ratio"]) or ratio > float(self.prefilter["max_amount_ratio"]):
            return False
        return abs((txn.transaction_date - entry.entry_date).days) <= int(self.prefilter["max_days"])

    def rank(self, txn: NormalizedTransaction, entries: Iterable[LedgerEntry],
             top_n: Optional[int] = None) -> List[MatchPrediction]:
        """Score every candidate without logging, best first."""
        predictions = [self._evaluate(txn, entry) for entry in entries]
        predictions.sort(key=lambda p: p.confidence or 0.0, reverse=True)
        limit = top_n if top_n is not None else int(self.scoring.get("top_n", 3))
        return predictions[:limit]

    def suggest(self, txn: NormalizedTransaction, entries: Sequence[LedgerEntry]) -> Optional[MatchPrediction]:
        """Best predicted match among plausible candidates, logged; None if there is none."""
        candidates = [e for e in entries if self.is_reasonable_candidate(txn, e)]
        if not candidates:
            logger.debug("Pre-filter removed all %d candidates for %s", len(entries), transaction_ref(txn))
            return None
        logger.debug("Pre-filter kept %d of %d candidates for %s", len(candidates), len(entries), transaction_ref(txn))

        by_id = {e.entry_id: e for e in candidates}
        matches = [p for p in self.rank(txn, candidates, top_n=len(candidates)) if p.predicted_match]
        if not matches:
            logger.info("No match predicted for %s among %d candidates", transaction_ref(txn), len(candidates))
            return None
        best = matches[0]
        self._log(best, txn, by_id[best.ledger_ref])
        logger.info("Predicted %s -> %s with confidence %.1f%%", best.transaction_ref, best.ledger_ref, best.confidence)
        return best

    def suggest_batch(self, transactions: Iterable[NormalizedTransaction],
                      entries: Sequence[LedgerEntry]) -> List[MatchPrediction]:
        results = []
        count = 0
        for txn in transactions:
            count += 1
            best = self.suggest(txn, entries)
            if best is not None:
                results.append(best)
        logger.info("Batch prediction: %d matches for %d transactions", len(results), count)
        return results
