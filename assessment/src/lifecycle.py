"""Evaluation lifecycle: create, score, complete, re-evaluate.

An evaluation moves one way from ``in_progress`` to ``completed``. Every
score write is validated in full before anything is stored, then the
scores and the summary recomputed from the complete score map are
written in one transaction. A rejected write therefore leaves both the
scores and the cached summaries exactly as they were.

Example::

    lifecycle = EvaluationLifecycle(storage, CatalogRegistry.load())
    evaluation = lifecycle.create("client_1", ProtocolType.ABLLS_R)
    lifecycle.record_score(evaluation.id, "A1", 2)
    lifecycle.complete(evaluation.id)
    follow_up = lifecycle.re_evaluate("client_1", ProtocolType.ABLLS_R)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from catalog.src.loader import CatalogRegistry
from catalog.src.models import Protocol, ProtocolType
from catalog.src.scales import normalize_value
from assessment.src.comparison import (
    ComparisonConfig,
    ComparisonEngine,
    ComparisonReport,
    latest_completed,
    select_previous,
)
from assessment.src.models import Evaluation, ItemScore
from assessment.src.storage import AssessmentStorage, AssessmentStorageError
from assessment.src.summary import summarize_protocol
from shared.hardening import InputValidator

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 2000


class LifecycleError(Exception):
    """Base class for evaluation lifecycle errors."""


class EvaluationNotFoundError(LifecycleError, LookupError):
    """Raised when an evaluation id does not exist."""


class InvalidStateError(LifecycleError):
    """Raised when a mutation is attempted on a completed evaluation."""


@dataclass
class ScoreEntry:
    """One requested score write.

    Attributes:
        item_id: Catalog item id.
        value: Raw value on the protocol's scale. Ignored when ``is_na``.
        is_na: Mark the item not applicable.
        note: New note; None keeps the existing note.
    """

    item_id: str
    value: Any = None
    is_na: bool = False
    note: str | None = None


class EvaluationLifecycle:
    """Orchestrates evaluations over storage and the protocol catalog.

    Mutations are serialized per lifecycle instance; reads are not.

    Args:
        storage: Initialized AssessmentStorage.
        registry: Loaded protocol catalog.
        comparison_config: Thresholds for comparison summaries.
    """

    def __init__(
        self,
        storage: AssessmentStorage,
        registry: CatalogRegistry,
        comparison_config: ComparisonConfig | None = None,
    ) -> None:
        self._storage = storage
        self._registry = registry
        self._comparison = ComparisonEngine(comparison_config)
        self._validator = InputValidator()
        self._lock = threading.Lock()

    # ---------------------------------------------------------------
    # Creation
    # ---------------------------------------------------------------

    def create(
        self,
        client_id: str,
        protocol_type: ProtocolType | str,
        previous_evaluation_id: str | None = None,
        evaluator_id: str = "",
        evaluator_name: str = "",
        chronological_age_months: int | None = None,
    ) -> Evaluation:
        """Start a new, empty evaluation.

        No scores are copied from the previous evaluation; its id is kept
        only for later comparison.

        Args:
            client_id: Owning client.
            protocol_type: Instrument to administer.
            previous_evaluation_id: Optional predecessor to compare against.
            evaluator_id: Who administers the evaluation.
            evaluator_name: Evaluator display name.
            chronological_age_months: Client age at evaluation time.

        Returns:
            The stored Evaluation with status ``in_progress``.

        Raises:
            ValidationError: If the client id is not a valid identifier.
            CatalogNotFoundError: If the protocol is not loaded.
            EvaluationNotFoundError: If the previous evaluation is missing.
            LifecycleError: If the previous evaluation belongs to another
                client or protocol.
        """
        self._validator.validate_identifier(client_id)
        protocol = self._registry.get(protocol_type)
        if previous_evaluation_id is not None:
            previous = self.get(previous_evaluation_id)
            if previous.client_id != client_id or previous.protocol_type != protocol.protocol_type:
                raise LifecycleError(
                    f"Previous evaluation {previous_evaluation_id} is not a "
                    f"{protocol.name} evaluation of client {client_id}"
                )

        evaluation = Evaluation(
            id=Evaluation.generate_id(),
            client_id=client_id,
            protocol_type=protocol.protocol_type,
            evaluator_id=evaluator_id,
            evaluator_name=evaluator_name,
            summary=summarize_protocol(protocol, {}),
            previous_evaluation_id=previous_evaluation_id,
            chronological_age_months=chronological_age_months,
        )
        with self._lock:
            self._storage.create_evaluation(evaluation)
        logger.info(
            "Created %s evaluation %s for client %s",
            protocol.name,
            evaluation.id,
            client_id,
        )
        return evaluation

    def re_evaluate(
        self,
        client_id: str,
        protocol_type: ProtocolType | str,
        evaluator_id: str = "",
        evaluator_name: str = "",
        chronological_age_months: int | None = None,
    ) -> Evaluation:
        """Create a follow-up evaluation linked to the latest completed one.

        Returns:
            The new Evaluation; ``previous_evaluation_id`` is None when the
            client has no completed evaluation of this protocol.
        """
        protocol = self._registry.get(protocol_type)
        previous = latest_completed(
            self._storage.list_evaluations(client_id, protocol.protocol_type),
            client_id,
            protocol.protocol_type,
        )
        evaluation = self.create(
            client_id,
            protocol.protocol_type,
            previous_evaluation_id=previous.id if previous else None,
            evaluator_id=evaluator_id,
            evaluator_name=evaluator_name,
            chronological_age_months=chronological_age_months,
        )
        logger.info(
            "Re-evaluation %s follows %s",
            evaluation.id,
            previous.id if previous else "no previous evaluation",
        )
        return evaluation

    # ---------------------------------------------------------------
    # Scoring
    # ---------------------------------------------------------------

    def record_score(
        self,
        evaluation_id: str,
        item_id: str,
        value: Any = None,
        is_na: bool = False,
        note: str | None = None,
    ) -> Evaluation:
        """Record one item score and refresh the summaries.

        Raises:
            EvaluationNotFoundError: If the evaluation does not exist.
            InvalidStateError: If the evaluation is completed.
            CatalogNotFoundError: If the item is not in the protocol.
            OutOfRangeError: If the value is invalid for the item.
        """
        return self.record_scores(
            evaluation_id, [ScoreEntry(item_id=item_id, value=value, is_na=is_na, note=note)]
        )

    def record_scores(self, evaluation_id: str, entries: Iterable[ScoreEntry]) -> Evaluation:
        """Record several item scores all-or-nothing.

        Every entry is validated before any is written. When the same item
        appears more than once, the last entry wins.

        Args:
            evaluation_id: Target evaluation.
            entries: Score writes to apply.

        Returns:
            The updated Evaluation.

        Raises:
            EvaluationNotFoundError: If the evaluation does not exist.
            InvalidStateError: If the evaluation is completed.
            CatalogNotFoundError: If any item is not in the protocol.
            OutOfRangeError: If any value is invalid for its item.
        """
        with self._lock:
            evaluation = self.get(evaluation_id)
            if evaluation.is_completed:
                logger.warning("Rejected score write to completed evaluation %s", evaluation_id)
                raise InvalidStateError(f"Evaluation {evaluation_id} is completed")
            protocol = self._registry.get(evaluation.protocol_type)

            now = datetime.now()
            pending: dict[str, ItemScore] = {}
            try:
                for entry in entries:
                    pending[entry.item_id] = self._build_score(
                        protocol, evaluation.scores.get(entry.item_id), entry, now
                    )
            except (LookupError, ValueError) as exc:
                logger.warning("Rejected score write to %s: %s", evaluation_id, exc)
                raise

            if not pending:
                return evaluation
            try:
                self._storage.save_scores(
                    evaluation_id,
                    pending.values(),
                    lambda scores: summarize_protocol(protocol, scores),
                    updated_at=now,
                )
            except AssessmentStorageError as exc:
                current = self._storage.get_evaluation(evaluation_id)
                if current is None:
                    raise EvaluationNotFoundError(f"Evaluation not found: {evaluation_id}") from exc
                if current.is_completed:
                    raise InvalidStateError(f"Evaluation {evaluation_id} is completed") from exc
                raise
            return self.get(evaluation_id)

    def _build_score(
        self,
        protocol: Protocol,
        existing: ItemScore | None,
        entry: ScoreEntry,
        now: datetime,
    ) -> ItemScore:
        item = protocol.require_item(entry.item_id)
        if entry.is_na:
            value = None
        elif entry.value is None:
            value = None
        else:
            value = normalize_value(protocol.scale, item, entry.value)

        if entry.note is not None:
            note: str | None = self._validator.sanitize_string(
                entry.note, max_length=MAX_NOTE_LENGTH
            )
        else:
            note = existing.note if existing is not None else None
        return ItemScore(
            item_id=item.id, value=value, is_na=entry.is_na, note=note, updated_at=now
        )

    # ---------------------------------------------------------------
    # Completion and comparison
    # ---------------------------------------------------------------

    def complete(self, evaluation_id: str) -> Evaluation:
        """Finalize an evaluation. Completion cannot be undone.

        Raises:
            EvaluationNotFoundError: If the evaluation does not exist.
            InvalidStateError: If it is already completed.
        """
        with self._lock:
            evaluation = self.get(evaluation_id)
            if evaluation.is_completed or not self._storage.mark_completed(
                evaluation_id, datetime.now()
            ):
                logger.warning("Rejected completion of completed evaluation %s", evaluation_id)
                raise InvalidStateError(f"Evaluation {evaluation_id} is already completed")
        completed = self.get(evaluation_id)
        logger.info(
            "Completed evaluation %s (%d%% overall)", evaluation_id, completed.overall_percentage
        )
        return completed

    def compare_with_previous(self, evaluation_id: str) -> ComparisonReport | None:
        """Compare an evaluation with its predecessor.

        The linked ``previous_evaluation_id`` is used when it points at a
        completed evaluation; otherwise the comparand is selected from the
        client's history.

        Returns:
            ComparisonReport, or None when there is nothing to compare with.
        """
        current = self.get(evaluation_id)
        previous = None
        if current.previous_evaluation_id is not None:
            previous = self._storage.get_evaluation(current.previous_evaluation_id)
            if previous is not None and not previous.is_completed:
                previous = None
        if previous is None:
            previous = select_previous(
                self._storage.list_evaluations(current.client_id, current.protocol_type),
                current,
            )
        return self._comparison.compare(current, previous)

    # ---------------------------------------------------------------
    # Queries
    # ---------------------------------------------------------------

    def get(self, evaluation_id: str) -> Evaluation:
        """Return an evaluation or raise EvaluationNotFoundError."""
        evaluation = self._storage.get_evaluation(evaluation_id)
        if evaluation is None:
            raise EvaluationNotFoundError(f"Evaluation not found: {evaluation_id}")
        return evaluation

    def list_for_client(
        self, client_id: str, protocol_type: ProtocolType | str | None = None
    ) -> list[Evaluation]:
        """List a client's evaluations, newest first.

        Raises:
            CatalogNotFoundError: If ``protocol_type`` is not a loaded protocol.
        """
        key = self._registry.get(protocol_type).protocol_type if protocol_type else None
        return self._storage.list_evaluations(client_id, key)

    def delete(self, evaluation_id: str) -> None:
        """Delete an evaluation and its scores.

        Raises:
            EvaluationNotFoundError: If the evaluation does not exist.
        """
        with self._lock:
            if not self._storage.delete_evaluation(evaluation_id):
                raise EvaluationNotFoundError(f"Evaluation not found: {evaluation_id}")
        logger.info("Deleted evaluation %s", evaluation_id)

    def protocol_for(self, evaluation: Evaluation) -> Protocol:
        """Return the catalog protocol an evaluation is scored against."""
        return self._registry.get(evaluation.protocol_type)
