import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from statement_models import PredictionLogEntry, TrainingExample

logger = logging.getLogger(__name__)


def _get_db_path() -> str:
    """Read on every call so tests can monkeypatch the env var."""
    return os.getenv("RECON_STATE_DB", "recon_state.db")


class PredictionStore:
    """SQLite log of match predictions and the training examples they yield."""

    def __init__(self, db_path: Optional[str] = None):
        self._db_path = db_path

    @property
    def db_path(self) -> str:
        return self._db_path or _get_db_path()

    @contextmanager
    def _conn(self):
        con = sqlite3.connect(self.db_path)
        con.execute("PRAGMA journal_mode=WAL;")
        try:
            yield con
            con.commit()
        finally:
            con.close()

    def init_db(self):
        with self._conn() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS prediction_log (
                  log_id INTEGER PRIMARY KEY AUTOINCREMENT,
                  model_ref TEXT,
                  transaction_ref TEXT,
                  ledger_ref TEXT,
                  predicted_match INTEGER,
                  confidence REAL,
                  features_json TEXT,
                  latency_ms INTEGER,
                  bank_account TEXT,
                  ledger_account TEXT,
                  actual_outcome INTEGER,
                  was_correct INTEGER,
                  predicted_at TEXT,
                  validated_at TEXT
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS training_data (
                  example_id INTEGER PRIMARY KEY AUTOINCREMENT,
                  features_json TEXT,
                  accepted INTEGER,
                  model_ref TEXT,
                  prediction_confidence REAL,
                  bank_account TEXT,
                  ledger_account TEXT,
                  rejection_reason TEXT,
                  created_at TEXT
                );
                """
            )
            con.execute(
                "CREATE INDEX IF NOT EXISTS idx_training_pair ON training_data(bank_account, ledger_account);"
            )

    def log_prediction(self, entry: PredictionLogEntry) -> int:
        with self._conn() as con:
            cur = con.execute(
                "INSERT INTO prediction_log(model_ref, transaction_ref, ledger_ref, predicted_match, confidence, "
                "features_json, latency_ms, bank_account, ledger_account, actual_outcome, was_correct, predicted_at) "
                "VALUES (?,?,?,?,?,?,?,?,?,?,?,?)",
                (
                    entry.model_ref,
                    entry.transaction_ref,
                    entry.ledger_ref,
                    int(entry.predicted_match),
                    entry.confidence,
                    json.dumps(entry.features),
                    entry.latency_ms,
                    entry.bank_account,
                    entry.ledger_account,
                    None,
                    None,
                    entry.predicted_at,
                ),
            )
            entry.log_id = cur.lastrowid
        logger.debug("Logged prediction %s (%s / %s)", entry.log_id, entry.transaction_ref, entry.ledger_ref)
        return entry.log_id

    def get_prediction(self, log_id: int) -> Optional[PredictionLogEntry]:
        with self._conn() as con:
            cur = con.execute(
                "SELECT log_id, model_ref, transaction_ref, ledger_ref, predicted_match, confidence, features_json, "
                "latency_ms, bank_account, ledger_account, actual_outcome, was_correct, predicted_at "
                "FROM prediction_log WHERE log_id=?",
                (log_id,),
            )
            row = cur.fetchone()
        if not row:
            return None
        (log_id, model_ref, transaction_ref, ledger_ref, predicted_match, confidence, features_json,
         latency_ms, bank_account, ledger_account, actual_outcome, was_correct, predicted_at) = row
        return PredictionLogEntry(
            log_id=log_id,
            model_ref=model_ref,
            transaction_ref=transaction_ref,
            ledger_ref=ledger_ref,
            predicted_match=bool(predicted_match),
            confidence=confidence,
            features=json.loads(features_json or "{}"),
            latency_ms=latency_ms,
            bank_account=bank_account,
            ledger_account=ledger_account,
            actual_outcome=None if actual_outcome is None else bool(actual_outcome),
            was_correct=None if was_correct is None else bool(was_correct),
            predicted_at=predicted_at,
        )

    def record_outcome(self, log_id: int, outcome: bool) -> PredictionLogEntry:
        """Store the human decision. Raises KeyError / ValueError on misuse."""
        entry = self.get_prediction(log_id)
        if entry is None:
            raise KeyError(f"unknown prediction {log_id}")
        entry.update_outcome(outcome)
        with self._conn() as con:
            cur = con.execute(
                "UPDATE prediction_log SET actual_outcome=?, was_correct=?, validated_at=? "
                "WHERE log_id=? AND actual_outcome IS NULL",
                (int(entry.actual_outcome), int(entry.was_correct), datetime.utcnow().isoformat(), log_id),
            )
            if cur.rowcount == 0:
                raise ValueError(f"prediction {log_id} already validated")
        return entry

    def real_world_accuracy(self, since: Optional[str] = None) -> Optional[float]:
        """Share of validated predictions that were right, None before any feedback."""
        query = "SELECT AVG(was_correct) FROM prediction_log WHERE was_correct IS NOT NULL"
        params: tuple = ()
        if since:
            query += " AND predicted_at >= ?"
            params = (since,)
        with self._conn() as con:
            value = con.execute(query, params).fetchone()[0]
        return None if value is None else float(value)

    def average_latency(self, since: Optional[str] = None) -> Optional[float]:
        query = "SELECT AVG(latency_ms) FROM prediction_log"
        params: tuple = ()
        if since:
            query += " WHERE predicted_at >= ?"
            params = (since,)
        with self._conn() as con:
            value = con.execute(query, params).fetchone()[0]
        return None if value is None else float(value)

    def add_training_example(self, example: TrainingExample) -> int:
        with self._conn() as con:
            cur = con.execute(
                "INSERT INTO training_data(features_json, accepted, model_ref, prediction_confidence, bank_account, "
                "ledger_account, rejection_reason, created_at) VALUES (?,?,?,?,?,?,?,?)",
                (
                    json.dumps(example.features),
                    int(example.accepted),
                    example.model_ref,
                    example.prediction_confidence,
                    example.bank_account,
                    example.ledger_account,
                    example.rejection_reason,
                    example.created_at,
                ),
            )
            return cur.lastrowid

    def list_training_examples(self, bank_account: Optional[str] = None,
                               ledger_account: Optional[str] = None) -> List[TrainingExample]:
        query = ("SELECT features_json, accepted, model_ref, prediction_confidence, bank_account, ledger_account, "
                 "rejection_reason, created_at FROM training_data")
        clauses, params = [], []
        if bank_account is not None:
            clauses.append("bank_account=?")
            params.append(bank_account)
        if ledger_account is not None:
            clauses.append("ledger_account=?")
            params.append(ledger_account)
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY example_id"
        with self._conn() as con:
            rows = con.execute(query, params).fetchall()
        return [
            TrainingExample(
                features=json.loads(features_json or "{}"),
                accepted=bool(accepted),
                model_ref=model_ref,
                prediction_confidence=confidence,
                bank_account=bank,
                ledger_account=ledger,
                rejection_reason=reason,
                created_at=created_at,
            )
            for features_json, accepted, model_ref, confidence, bank, ledger, reason, created_at in rows
        ]
