"""Production hardening utilities for the clinic assessment backend.

Provides user-friendly error formatting for API responses, sanitizing of
free-text input such as evaluator notes, and health checks for the
protocol catalog and the assessment database.
"""

from __future__ import annotations

import html
import json
import logging
import re
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 1. Error Formatting
# ---------------------------------------------------------------------------


@dataclass
class UserFriendlyError:
    """A structured error designed for end-user consumption.

    Attributes:
        message: Clear description for the user.
        suggestion: Actionable guidance.
        component: Originating subsystem (catalog, assessment, storage).
        error_code: Machine-readable identifier (e.g. "ASMT_005").
        technical_detail: Debugging info for logs only -- never shown to users.
    """

    message: str
    suggestion: str
    component: str
    error_code: str
    technical_detail: str = ""

    def to_dict(self) -> dict[str, str]:
        """Serialize for API responses (excludes technical_detail).

        Returns:
            Dictionary safe for sending to end users.
        """
        return {
            "message": self.message,
            "suggestion": self.suggestion,
            "component": self.component,
            "error_code": self.error_code,
        }


class ErrorFormatter:
    """Convert internal exceptions to user-friendly messages.

    All methods return a ``UserFriendlyError`` and never expose internal
    paths, stack traces, or implementation details to the end user.
    """

    def format_assessment_error(self, error: Exception) -> UserFriendlyError:
        """Format an error raised while scoring or reporting an evaluation.

        Args:
            error: The caught exception.

        Returns:
            User-friendly error with actionable suggestion.
        """
        return self._format(error, component="assessment", code_prefix="ASMT")

    def format_catalog_error(self, error: Exception) -> UserFriendlyError:
        """Format an error raised while loading or reading protocol content.

        Args:
            error: The caught exception.

        Returns:
            User-friendly error with actionable suggestion.
        """
        return self._format(error, component="catalog", code_prefix="CTLG")

    def format_storage_error(self, error: Exception) -> UserFriendlyError:
        """Format a data-storage error.

        Args:
            error: The caught exception.

        Returns:
            User-friendly error with actionable suggestion.
        """
        return self._format(error, component="storage", code_prefix="STOR")

    # ------------------------------------------------------------------

    def _format(
        self,
        error: Exception,
        *,
        component: str,
        code_prefix: str,
    ) -> UserFriendlyError:
        message, suggestion, code_suffix = _classify_error(error)
        return UserFriendlyError(
            message=message,
            suggestion=suggestion,
            component=component,
            error_code=f"{code_prefix}_{code_suffix}",
            technical_detail=repr(error),
        )


def _classify_error(error: Exception) -> tuple[str, str, str]:
    """Map an exception to (message, suggestion, code_suffix).

    Args:
        error: The caught exception.

    Returns:
        Tuple of user message, suggestion text, and error code suffix.
    """
    if isinstance(error, FileNotFoundError):
        return (
            "A required content file could not be found.",
            "Check that the protocol content directory is installed.",
            "001",
        )
    if isinstance(error, PermissionError):
        return (
            "Permission denied when accessing a resource.",
            "Check file permissions and ensure the application has access.",
            "002",
        )
    if isinstance(error, sqlite3.Error):
        return (
            "The evaluation database could not complete the request.",
            "Try again. If the problem persists, check the database file.",
            "003",
        )
    if isinstance(error, LookupError):
        return (
            "The requested record could not be found.",
            "Check the evaluation, protocol, or item identifier.",
            "004",
        )
    if isinstance(error, json.JSONDecodeError):
        return (
            "A protocol content file contains invalid JSON.",
            "Verify the content file is valid JSON.",
            "006",
        )
    if isinstance(error, ValueError):
        return (
            "Invalid input was provided.",
            "Check the input values and try again.",
            "005",
        )
    return (
        "An unexpected error occurred.",
        "If this keeps happening, please report the issue.",
        "999",
    )


# ---------------------------------------------------------------------------
# 2. Input Validation
# ---------------------------------------------------------------------------

_IDENTIFIER = re.compile(r"^[A-Za-z0-9_.:-]{1,200}$")


class ValidationError(Exception):
    """Raised when input validation fails."""


class InputValidator:
    """Validate inputs at system boundaries.

    All methods raise ``ValidationError`` on failure unless
    documented otherwise.
    """

    def validate_identifier(self, value: str) -> str:
        """Check that an external identifier is short and printable.

        Args:
            value: Client, evaluator, or evaluation identifier.

        Returns:
            The identifier, unchanged.

        Raises:
            ValidationError: If the identifier is empty, too long, or
                contains characters outside ``[A-Za-z0-9_.:-]``.
        """
        if not _IDENTIFIER.match(value):
            raise ValidationError(f"Invalid identifier: {value[:50]!r}")
        return value

    def sanitize_string(
        self,
        value: str,
        *,
        max_length: int = 1000,
    ) -> str:
        """Sanitize a user-provided string.

        Escapes HTML, strips control characters, and truncates.

        Args:
            value: Raw user string.
            max_length: Maximum allowed length after sanitization.

        Returns:
            Cleaned string.
        """
        cleaned = html.escape(value, quote=True)
        cleaned = _strip_control_chars(cleaned)
        cleaned = cleaned.strip()
        if len(cleaned) > max_length:
            cleaned = cleaned[:max_length]
        return cleaned


def _strip_control_chars(text: str) -> str:
    """Remove ASCII control characters except common whitespace."""
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", text)


# ---------------------------------------------------------------------------
# 3. Health Checks
# ---------------------------------------------------------------------------


@dataclass
class HealthCheck:
    """Result of a single component health check.

    Attributes:
        component: Subsystem name (catalog, storage).
        status: One of "healthy", "degraded", "unavailable".
        message: Human-readable description.
        checked_at: UTC timestamp of the check.
    """

    component: str
    status: str
    message: str
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, str]:
        """Serialize for API responses."""
        return {
            "component": self.component,
            "status": self.status,
            "message": self.message,
            "checked_at": self.checked_at.isoformat(),
        }


class SystemHealthChecker:
    """Check the protocol content directory and the evaluation database.

    Args:
        data_dir: Protocol content directory.
        db_path: SQLite database path; None skips the storage check.
    """

    def __init__(self, data_dir: Path | None = None, db_path: Path | None = None) -> None:
        self.data_dir = data_dir
        self.db_path = db_path

    def check_catalog(self) -> HealthCheck:
        """Check that protocol content files are present."""
        if self.data_dir is None or not self.data_dir.is_dir():
            return HealthCheck("catalog", "unavailable", "Protocol content directory not found.")
        files = sorted(self.data_dir.glob("*.json"))
        if not files:
            return HealthCheck("catalog", "degraded", "No protocol content files found.")
        return HealthCheck("catalog", "healthy", f"{len(files)} protocol files available.")

    def check_storage(self) -> HealthCheck:
        """Check that the evaluation database can be opened and queried."""
        if self.db_path is None:
            return HealthCheck("storage", "unavailable", "Storage is not configured.")
        if not self.db_path.exists():
            return HealthCheck("storage", "degraded", "Database file has not been created yet.")
        try:
            conn = sqlite3.connect(str(self.db_path))
            try:
                conn.execute("SELECT 1").fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            logger.warning("Storage health check failed: %s", exc)
            return HealthCheck("storage", "unavailable", "Database could not be opened.")
        return HealthCheck("storage", "healthy", "Storage is operational.")

    def full_check(self) -> list[HealthCheck]:
        """Run every health check."""
        return [self.check_catalog(), self.check_storage()]
