"""
Validation and operation result models.

ValidationResult is produced by LedgerValidator. OperationResult is what
the flows in trove.orchestrator hand back to the UI: a success flag and a
message that can be shown as a notification as-is.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from trove.models.account import utc_now


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'too_long', 'exceeds_maximum')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (required fields, lengths, positive amounts)
    Stage 2: Semantic validation (balance limits, categories, dates)
    """

    subject: str = Field(
        ...,
        description="What was validated, e.g. 'account' or 'transfer'"
    )
    validated_at: datetime = Field(default_factory=utc_now)

    schema_valid: bool
    semantic_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.schema_valid and self.semantic_valid

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "warning"]


class OperationResult(BaseModel):
    """
    Outcome of a user-facing operation.

    `message` is ready to show in a toast; `data` carries the created or
    updated entity when the operation succeeded.
    """

    success: bool
    message: str
    data: Optional[Any] = None
    error_type: Optional[str] = Field(
        default=None,
        description="Exception class name when the operation failed"
    )
    warnings: list[str] = Field(default_factory=list)
