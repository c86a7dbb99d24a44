"""FastAPI router for the assessment engine.

Exposes REST endpoints for the protocol catalog, evaluation lifecycle,
score recording, comparison, clinical interpretation and suggested
goals. Designed to be mounted at /api/assessment/ by the parent
application.

All endpoint functions are synchronous (not async) because the
underlying AssessmentStorage uses synchronous SQLite calls. FastAPI runs
sync handlers in a thread pool automatically.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from catalog.src.loader import CatalogLoadError, CatalogRegistry
from catalog.src.models import CatalogNotFoundError
from catalog.src.scales import OutOfRangeError
from assessment.src.comparison import ComparisonError
from assessment.src.goals import MAX_GOALS, suggest_goals
from assessment.src.interpretation import ClinicalInterpreter, InterpretationConfig
from assessment.src.lifecycle import (
    EvaluationLifecycle,
    EvaluationNotFoundError,
    InvalidStateError,
    LifecycleError,
    ScoreEntry,
)
from assessment.src.storage import AssessmentStorage, AssessmentStorageError
from shared.hardening import ErrorFormatter, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()

# ---------------------------------------------------------------------------
# Module-level service instances (initialized by init_assessment_storage)
# ---------------------------------------------------------------------------

_storage: AssessmentStorage | None = None
_registry: CatalogRegistry | None = None
_lifecycle: EvaluationLifecycle | None = None
_interpreter: ClinicalInterpreter | None = None
_error_formatter = ErrorFormatter()


def init_assessment_storage(
    db_path: str | Path = ":memory:",
    data_dir: Path | None = None,
    interpretation_config: InterpretationConfig | None = None,
) -> AssessmentStorage:
    """Initialize storage, the protocol catalog and all service objects.

    Call this once at application startup before any requests are served.

    Args:
        db_path: Path to SQLite database file, or ':memory:'.
        data_dir: Protocol content directory; defaults to bundled content.
        interpretation_config: Bands used by the interpretation endpoint.

    Returns:
        The initialized AssessmentStorage instance.
    """
    global _storage, _registry, _lifecycle, _interpreter

    # Sync handlers run in a threadpool and share this connection.
    _storage = AssessmentStorage(db_path, check_same_thread=False)
    _storage.initialize_schema()
    _registry = CatalogRegistry.load(data_dir)
    _lifecycle = EvaluationLifecycle(_storage, _registry)
    _interpreter = ClinicalInterpreter(interpretation_config)
    return _storage


def get_lifecycle() -> EvaluationLifecycle:
    """Return the initialized EvaluationLifecycle or raise.

    Raises:
        HTTPException: If the service has not been initialized.
    """
    if _lifecycle is None:
        raise HTTPException(status_code=500, detail="Assessment storage not initialized")
    return _lifecycle


def get_registry() -> CatalogRegistry:
    """Return the loaded CatalogRegistry or raise.

    Raises:
        HTTPException: If the service has not been initialized.
    """
    if _registry is None:
        raise HTTPException(status_code=500, detail="Assessment storage not initialized")
    return _registry


def _to_http_error(exc: Exception, action: str) -> HTTPException:
    """Map a domain exception to an HTTPException.

    Unexpected errors are logged with traceback and returned as a
    user-friendly 500 without internal detail.
    """
    if isinstance(exc, (CatalogNotFoundError, EvaluationNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, (InvalidStateError, AssessmentStorageError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (OutOfRangeError, ValidationError)):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, (LifecycleError, ComparisonError)):
        return HTTPException(status_code=400, detail=str(exc))
    logger.exception("%s", action)
    if isinstance(exc, CatalogLoadError):
        friendly = _error_formatter.format_catalog_error(exc)
    elif isinstance(exc, sqlite3.Error):
        friendly = _error_formatter.format_storage_error(exc)
    else:
        friendly = _error_formatter.format_assessment_error(exc)
    return HTTPException(status_code=500, detail={"action": action, **friendly.to_dict()})


# ---------------------------------------------------------------------------
# Pydantic request models
# ---------------------------------------------------------------------------


ScoreValue = bool | int | float | str | None


class EvaluationCreate(BaseModel):
    """Request body for creating an evaluation."""

    client_id: str = Field(..., min_length=1, max_length=200)
    protocol_type: str = Field(..., min_length=1)
    previous_evaluation_id: str | None = None
    evaluator_id: str = Field(default="", max_length=200)
    evaluator_name: str = Field(default="", max_length=200)
    chronological_age_months: int | None = Field(default=None, ge=0, le=600)


class ReEvaluateRequest(BaseModel):
    """Request body for starting a re-evaluation."""

    client_id: str = Field(..., min_length=1, max_length=200)
    protocol_type: str = Field(..., min_length=1)
    evaluator_id: str = Field(default="", max_length=200)
    evaluator_name: str = Field(default="", max_length=200)
    chronological_age_months: int | None = Field(default=None, ge=0, le=600)


class ScoreUpdate(BaseModel):
    """Request body for recording one item score."""

    value: ScoreValue = None
    is_na: bool = False
    note: str | None = Field(default=None, max_length=5000)


class BatchScoreItem(ScoreUpdate):
    """One entry of a batch score update."""

    item_id: str = Field(..., min_length=1)


class BatchScoreUpdate(BaseModel):
    """Request body for recording many item scores at once."""

    scores: list[BatchScoreItem] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health")
def health_check() -> dict[str, Any]:
    """Return assessment service health status."""
    return {
        "status": "ok",
        "service": "assessment",
        "version": "0.1.0",
        "storage_initialized": _storage is not None,
        "protocols": [p.protocol_type.value for p in _registry.list_protocols()]
        if _registry is not None
        else [],
    }


# ---------------------------------------------------------------------------
# Protocol catalog
# ---------------------------------------------------------------------------


@router.get("/protocols")
def list_protocols() -> dict[str, Any]:
    """List loaded protocols without their items."""
    registry = get_registry()
    return {"protocols": [p.to_dict(include_items=False) for p in registry.list_protocols()]}


@router.get("/protocols/{protocol_type}")
def get_protocol(protocol_type: str) -> dict[str, Any]:
    """Return one protocol with all categories and items."""
    try:
        return get_registry().get(protocol_type).to_dict()
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to get protocol") from exc


@router.get("/protocols/{protocol_type}/items/{item_id}")
def get_protocol_item(protocol_type: str, item_id: str) -> dict[str, Any]:
    """Return one item and the category that owns it."""
    try:
        protocol = get_registry().get(protocol_type)
        item = protocol.require_item(item_id)
        category = protocol.category_for_item(item_id)
        return {
            "item": item.to_dict(),
            "category_id": category.id if category else None,
        }
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to get protocol item") from exc


# ---------------------------------------------------------------------------
# Evaluations
# ---------------------------------------------------------------------------


@router.post("/evaluations", status_code=201)
def create_evaluation(body: EvaluationCreate) -> dict[str, Any]:
    """Create a new in-progress evaluation."""
    try:
        evaluation = get_lifecycle().create(
            body.client_id,
            body.protocol_type,
            previous_evaluation_id=body.previous_evaluation_id,
            evaluator_id=body.evaluator_id,
            evaluator_name=body.evaluator_name,
            chronological_age_months=body.chronological_age_months,
        )
        return evaluation.to_dict()
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to create evaluation") from exc


@router.post("/evaluations/re-evaluate", status_code=201)
def re_evaluate(body: ReEvaluateRequest) -> dict[str, Any]:
    """Create a follow-up evaluation linked to the latest completed one."""
    try:
        evaluation = get_lifecycle().re_evaluate(
            body.client_id,
            body.protocol_type,
            evaluator_id=body.evaluator_id,
            evaluator_name=body.evaluator_name,
            chronological_age_months=body.chronological_age_months,
        )
        return evaluation.to_dict()
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to start re-evaluation") from exc


@router.get("/evaluations")
def list_evaluations(client_id: str, protocol_type: str | None = None) -> dict[str, Any]:
    """List a client's evaluations, newest first, without item scores."""
    try:
        evaluations = get_lifecycle().list_for_client(client_id, protocol_type)
        return {"evaluations": [e.to_dict(include_scores=False) for e in evaluations]}
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to list evaluations") from exc


@router.get("/evaluations/{evaluation_id}")
def get_evaluation(evaluation_id: str) -> dict[str, Any]:
    """Return an evaluation with scores and summaries."""
    try:
        return get_lifecycle().get(evaluation_id).to_dict()
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to get evaluation") from exc


@router.delete("/evaluations/{evaluation_id}")
def delete_evaluation(evaluation_id: str) -> dict[str, Any]:
    """Delete an evaluation and its scores."""
    try:
        get_lifecycle().delete(evaluation_id)
        return {"deleted": True, "id": evaluation_id}
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to delete evaluation") from exc


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


@router.put("/evaluations/{evaluation_id}/scores/{item_id}")
def record_score(evaluation_id: str, item_id: str, body: ScoreUpdate) -> dict[str, Any]:
    """Record one item score and return the refreshed evaluation."""
    try:
        evaluation = get_lifecycle().record_score(
            evaluation_id, item_id, value=body.value, is_na=body.is_na, note=body.note
        )
        return evaluation.to_dict()
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to record score") from exc


@router.post("/evaluations/{evaluation_id}/scores")
def record_scores(evaluation_id: str, body: BatchScoreUpdate) -> dict[str, Any]:
    """Record several item scores; nothing is saved if any entry is invalid."""
    try:
        entries = [
            ScoreEntry(item_id=s.item_id, value=s.value, is_na=s.is_na, note=s.note)
            for s in body.scores
        ]
        return get_lifecycle().record_scores(evaluation_id, entries).to_dict()
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to record scores") from exc


# ---------------------------------------------------------------------------
# Completion, comparison, interpretation, goals
# ---------------------------------------------------------------------------


@router.post("/evaluations/{evaluation_id}/complete")
def complete_evaluation(evaluation_id: str) -> dict[str, Any]:
    """Complete an evaluation and return it with its comparison report."""
    try:
        lifecycle = get_lifecycle()
        evaluation = lifecycle.complete(evaluation_id)
        report = lifecycle.compare_with_previous(evaluation_id)
        return {
            "evaluation": evaluation.to_dict(include_scores=False),
            "comparison": report.to_dict() if report else None,
        }
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to complete evaluation") from exc


@router.get("/evaluations/{evaluation_id}/comparison")
def get_comparison(evaluation_id: str) -> dict[str, Any]:
    """Compare an evaluation with its predecessor; null when there is none."""
    try:
        report = get_lifecycle().compare_with_previous(evaluation_id)
        return {"comparison": report.to_dict() if report else None}
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to compare evaluations") from exc


@router.get("/evaluations/{evaluation_id}/interpretation")
def get_interpretation(evaluation_id: str) -> dict[str, Any]:
    """Return the clinical interpretation of an evaluation."""
    try:
        evaluation = get_lifecycle().get(evaluation_id)
        interpreter = _interpreter or ClinicalInterpreter()
        return interpreter.interpret(evaluation).to_dict()
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to interpret evaluation") from exc


@router.get("/evaluations/{evaluation_id}/goals")
def get_suggested_goals(
    evaluation_id: str, client_name: str = "The client", limit: int = MAX_GOALS
) -> dict[str, Any]:
    """Suggest goals from the evaluation's emerging items."""
    try:
        lifecycle = get_lifecycle()
        evaluation = lifecycle.get(evaluation_id)
        goals = suggest_goals(
            lifecycle.protocol_for(evaluation),
            evaluation,
            client_name=client_name,
            max_goals=max(0, min(limit, MAX_GOALS)),
        )
        return {"goals": [g.to_dict() for g in goals]}
    except HTTPException:
        raise
    except Exception as exc:
        raise _to_http_error(exc, "Failed to suggest goals") from exc
