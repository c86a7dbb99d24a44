"""Clinic assessment backend server.

Mounts the assessment router under a single FastAPI application. The
router is imported lazily so that a broken protocol content directory
does not prevent the server from starting -- the unified health endpoint
reports what failed to load.

Usage::

    # Development (auto-reload)
    uvicorn clinic_server:app --reload --port 8430

    # Or run directly
    python clinic_server.py
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.hardening import SystemHealthChecker

logger = logging.getLogger("clinic")

DATA_DIR = Path("data/assessment")
DB_PATH = DATA_DIR / "assessment.db"

# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Clinic Assessment API",
    description=(
        "Scoring, summaries and re-evaluation comparison for ABLLS-R, "
        "VB-MAPP, Portage and Carolina developmental assessments."
    ),
    version="0.1.0",
)

# ---------------------------------------------------------------------------
# CORS -- allow the local web front end
# ---------------------------------------------------------------------------

_ALLOWED_ORIGINS = [
    "http://localhost:3000",   # Next.js dev server
    "http://localhost:8430",   # Self (for Swagger UI)
    "http://127.0.0.1:3000",
    "http://127.0.0.1:8430",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_router_status: dict[str, Any] = {"loaded": False, "error": None}


# ---------------------------------------------------------------------------
# Assessment router
# ---------------------------------------------------------------------------


def _mount_assessment() -> None:
    """Mount the assessment router at ``/api/assessment/``.

    Initializes AssessmentStorage with an on-disk SQLite database in the
    project ``data/assessment/`` directory and loads bundled protocols.
    """
    try:
        from assessment.src.server import init_assessment_storage, router as assessment_router

        DATA_DIR.mkdir(parents=True, exist_ok=True)
        init_assessment_storage(DB_PATH)

        app.include_router(assessment_router, prefix="/api/assessment", tags=["assessment"])
        _router_status["loaded"] = True
        logger.info("Assessment router mounted at /api/assessment/")
    except Exception as exc:
        _router_status["error"] = str(exc)
        logger.warning("Assessment router failed to load: %s", exc)


@app.get("/api/health")
async def unified_health() -> dict[str, Any]:
    """Return health status for the router, content and database."""
    from catalog.src.loader import DEFAULT_DATA_DIR

    checks = SystemHealthChecker(data_dir=DEFAULT_DATA_DIR, db_path=DB_PATH).full_check()
    if _router_status["loaded"] and all(c.status == "healthy" for c in checks):
        status = "ok"
    elif _router_status["loaded"]:
        status = "degraded"
    else:
        status = "error"
    return {
        "status": status,
        "version": "0.1.0",
        "assessment": _router_status,
        "checks": [c.to_dict() for c in checks],
    }


_mount_assessment()


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run_server(host: str = "127.0.0.1", port: int = 8430) -> None:
    """Start the clinic server via uvicorn.

    Args:
        host: Bind address. Defaults to localhost.
        port: Port number. Defaults to 8430.
    """
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    run_server()
