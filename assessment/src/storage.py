"""SQLite-backed storage for evaluations and their item scores.

Item scores are stored one row per (evaluation, item) and written with
an upsert, so writes to different items of the same evaluation merge
instead of overwriting each other. The cached summary is rewritten in
the same transaction as the scores it was computed from.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterable

from catalog.src.models import ProtocolType
from assessment.src.models import (
    Evaluation,
    EvaluationStatus,
    ItemScore,
    OverallSummary,
)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS evaluations (
    id TEXT PRIMARY KEY,
    client_id TEXT NOT NULL,
    protocol_type TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'in_progress',
    evaluator_id TEXT DEFAULT '',
    evaluator_name TEXT DEFAULT '',
    previous_evaluation_id TEXT,
    chronological_age_months INTEGER,
    summary_json TEXT DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT
);

CREATE TABLE IF NOT EXISTS item_scores (
    evaluation_id TEXT NOT NULL,
    item_id TEXT NOT NULL,
    value_json TEXT DEFAULT 'null',
    is_na INTEGER DEFAULT 0,
    note TEXT,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (evaluation_id, item_id),
    FOREIGN KEY (evaluation_id) REFERENCES evaluations(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_evaluations_client
    ON evaluations(client_id, protocol_type);
"""

_UPSERT_SCORE_SQL = """
INSERT INTO item_scores (evaluation_id, item_id, value_json, is_na, note, updated_at)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(evaluation_id, item_id) DO UPDATE SET
    value_json = excluded.value_json,
    is_na = excluded.is_na,
    note = excluded.note,
    updated_at = excluded.updated_at
"""


class AssessmentStorageError(Exception):
    """Raised for storage-level errors (duplicates, missing rows, etc.)."""


class AssessmentStorage:
    """SQLite storage for Evaluation records.

    Args:
        db_path: Path to SQLite database file, or ':memory:' for in-memory.
        check_same_thread: Passed to sqlite3; the API server shares one
            connection across worker threads and sets this to False.

    Example::

        with AssessmentStorage("assessment.db") as store:
            store.initialize_schema()
            store.create_evaluation(evaluation)
    """

    def __init__(self, db_path: str | Path = ":memory:", check_same_thread: bool = True) -> None:
        self._db_path = str(db_path)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=check_same_thread)
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()

    def __enter__(self) -> AssessmentStorage:
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Close the database connection."""
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def initialize_schema(self) -> None:
        """Create all tables and indexes if they don't exist."""
        self._conn.executescript(_SCHEMA_SQL)
        self._conn.commit()

    # ---------------------------------------------------------------
    # Evaluations
    # ---------------------------------------------------------------

    def create_evaluation(self, evaluation: Evaluation) -> Evaluation:
        """Insert a new evaluation together with any scores it carries.

        Args:
            evaluation: Evaluation to insert.

        Returns:
            The inserted evaluation.

        Raises:
            AssessmentStorageError: If an evaluation with the same ID exists.
        """
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        "INSERT INTO evaluations (id, client_id, protocol_type, status, "
                        "evaluator_id, evaluator_name, previous_evaluation_id, "
                        "chronological_age_months, summary_json, created_at, updated_at, "
                        "completed_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            evaluation.id,
                            evaluation.client_id,
                            evaluation.protocol_type.value,
                            evaluation.status.value,
                            evaluation.evaluator_id,
                            evaluation.evaluator_name,
                            evaluation.previous_evaluation_id,
                            evaluation.chronological_age_months,
                            json.dumps(evaluation.summary.to_dict()),
                            evaluation.created_at.isoformat(),
                            evaluation.updated_at.isoformat(),
                            evaluation.completed_at.isoformat()
                            if evaluation.completed_at
                            else None,
                        ),
                    )
                    self._upsert_scores(evaluation.id, evaluation.scores.values())
            except sqlite3.IntegrityError as exc:
                raise AssessmentStorageError(
                    f"Evaluation already exists: {evaluation.id}"
                ) from exc
        return evaluation

    def get_evaluation(self, evaluation_id: str) -> Evaluation | None:
        """Fetch an evaluation with its full score map.

        Args:
            evaluation_id: The evaluation's unique ID.

        Returns:
            Evaluation or None if not found.
        """
        row = self._conn.execute(
            "SELECT * FROM evaluations WHERE id = ?", (evaluation_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_evaluation(row, self.get_scores(evaluation_id))

    def list_evaluations(
        self, client_id: str, protocol_type: ProtocolType | None = None
    ) -> list[Evaluation]:
        """List a client's evaluations, newest first.

        Args:
            client_id: Owning client.
            protocol_type: Optional protocol filter.

        Returns:
            Evaluations ordered by creation time, most recent first.
        """
        if protocol_type is None:
            rows = self._conn.execute(
                "SELECT * FROM evaluations WHERE client_id = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (client_id,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM evaluations WHERE client_id = ? AND protocol_type = ? "
                "ORDER BY created_at DESC, rowid DESC",
                (client_id, ProtocolType(protocol_type).value),
            ).fetchall()
        return [self._row_to_evaluation(r, self.get_scores(r["id"])) for r in rows]

    def delete_evaluation(self, evaluation_id: str) -> bool:
        """Delete an evaluation and its scores.

        Args:
            evaluation_id: ID of the evaluation to delete.

        Returns:
            True if deleted, False if not found.
        """
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM evaluations WHERE id = ?", (evaluation_id,)
            )
        return cursor.rowcount > 0

    def mark_completed(self, evaluation_id: str, completed_at: datetime) -> bool:
        """Move an in-progress evaluation to completed.

        Returns:
            True if the row changed, False if it was missing or already
            completed.
        """
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "UPDATE evaluations SET status = ?, completed_at = ?, updated_at = ? "
                "WHERE id = ? AND status = ?",
                (
                    EvaluationStatus.COMPLETED.value,
                    completed_at.isoformat(),
                    completed_at.isoformat(),
                    evaluation_id,
                    EvaluationStatus.IN_PROGRESS.value,
                ),
            )
        return cursor.rowcount > 0

    # ---------------------------------------------------------------
    # Item scores
    # ---------------------------------------------------------------

    def get_scores(self, evaluation_id: str) -> dict[str, ItemScore]:
        """Return the score map of one evaluation."""
        rows = self._conn.execute(
            "SELECT * FROM item_scores WHERE evaluation_id = ? ORDER BY item_id",
            (evaluation_id,),
        ).fetchall()
        return {r["item_id"]: self._row_to_item_score(r) for r in rows}

    def save_scores(
        self,
        evaluation_id: str,
        scores: Iterable[ItemScore],
        summarize: Callable[[dict[str, ItemScore]], OverallSummary],
        updated_at: datetime,
    ) -> OverallSummary:
        """Upsert item scores and refresh the cached summary atomically.

        The summary is computed from the merged score map read back inside
        the transaction, so it always reflects every stored row.

        Args:
            evaluation_id: Target evaluation.
            scores: ItemScore rows to upsert.
            summarize: Builds the summary from the full score map.
            updated_at: New modification time of the evaluation.

        Returns:
            The summary that was stored.

        Raises:
            AssessmentStorageError: If the evaluation does not exist or is
                no longer in progress. Nothing is written in that case.
        """
        with self._lock:
            try:
                with self._conn:
                    status = self._conn.execute(
                        "SELECT status FROM evaluations WHERE id = ?", (evaluation_id,)
                    ).fetchone()
                    if status is None:
                        raise AssessmentStorageError(f"Evaluation not found: {evaluation_id}")
                    if status["status"] != EvaluationStatus.IN_PROGRESS.value:
                        raise AssessmentStorageError(
                            f"Evaluation is not in progress: {evaluation_id}"
                        )
                    self._upsert_scores(evaluation_id, scores)
                    summary = summarize(self.get_scores(evaluation_id))
                    self._conn.execute(
                        "UPDATE evaluations SET summary_json = ?, updated_at = ? WHERE id = ?",
                        (json.dumps(summary.to_dict()), updated_at.isoformat(), evaluation_id),
                    )
            except sqlite3.IntegrityError as exc:
                raise AssessmentStorageError(
                    f"Could not save scores for {evaluation_id}"
                ) from exc
        return summary

    def _upsert_scores(self, evaluation_id: str, scores: Iterable[ItemScore]) -> None:
        self._conn.executemany(
            _UPSERT_SCORE_SQL,
            [
                (
                    evaluation_id,
                    s.item_id,
                    json.dumps(s.value),
                    int(s.is_na),
                    s.note,
                    s.updated_at.isoformat(),
                )
                for s in scores
            ],
        )

    # ---------------------------------------------------------------
    # Row-to-model helpers
    # ---------------------------------------------------------------

    @staticmethod
    def _row_to_item_score(row: sqlite3.Row) -> ItemScore:
        """Convert a database row to an ItemScore."""
        return ItemScore(
            item_id=row["item_id"],
            value=json.loads(row["value_json"]),
            is_na=bool(row["is_na"]),
            note=row["note"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _row_to_evaluation(row: sqlite3.Row, scores: dict[str, ItemScore]) -> Evaluation:
        """Convert a database row plus its scores to an Evaluation."""
        return Evaluation(
            id=row["id"],
            client_id=row["client_id"],
            protocol_type=ProtocolType(row["protocol_type"]),
            status=EvaluationStatus(row["status"]),
            evaluator_id=row["evaluator_id"],
            evaluator_name=row["evaluator_name"],
            scores=scores,
            summary=OverallSummary.from_dict(json.loads(row["summary_json"])),
            previous_evaluation_id=row["previous_evaluation_id"],
            chronological_age_months=row["chronological_age_months"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            completed_at=datetime.fromisoformat(row["completed_at"])
            if row["completed_at"]
            else None,
        )
