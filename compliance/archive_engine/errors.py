"""
Error types for the archive engine.

This module defines all exception types raised by the engine:
- ArchiveEngineError: Base exception
- ValidationError: Rejected input (ineligible category, bad visibility, missing field)
- ConflictError: An active record already exists for the asset
- PolicyBlockedError: Usage-gated operation refused by the policy gate
- TerminalStateError: Operation against ArchivedDeleted / ExemptionVoid
- ImmutabilityError: Attempt to overwrite a write-once field
- ResourceError: Content could not be resolved, read or deleted
- RecordNotFoundError: Archive record does not exist
- InvalidTransitionError: Operation not valid from the record's current status

Invariants:
    - All errors inherit from ArchiveEngineError
    - Errors carry a stable code and structured details for UI messaging
    - Errors are raised before any mutation unless documented otherwise
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ArchiveEngineError(Exception):
    """Base exception for all archive engine errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "ARCHIVE_ERROR"
        self.details = details or {}


class ValidationError(ArchiveEngineError):
    """Input rejected before any mutation.

    Raised when:
    - Asset category is not archivable
    - Visibility is not "public" or "admin"
    - A required field is missing or too long
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name},
        )
        self.field_name = field_name


class ConflictError(ArchiveEngineError):
    """An active (non-terminal) record already exists for the asset.

    The caller must unarchive the existing record first.
    """

    def __init__(
        self,
        message: str,
        asset_ref: str,
        existing_record_id: Optional[str] = None,
        existing_status: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="CONFLICT",
            details={
                "asset_ref": asset_ref,
                "existing_record_id": existing_record_id,
                "existing_status": existing_status,
            },
        )
        self.asset_ref = asset_ref
        self.existing_record_id = existing_record_id
        self.existing_status = existing_status


class PolicyBlockedError(ArchiveEngineError):
    """The policy gate refused the operation because the asset is referenced.

    Status is unchanged; the operation can be retried once the
    references are removed or the policy allows archiving in use.
    """

    def __init__(
        self,
        message: str,
        reference_count: int,
        reason: str,
        record_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="POLICY_BLOCKED",
            details={
                "reference_count": reference_count,
                "reason": reason,
                "record_id": record_id,
            },
        )
        self.reference_count = reference_count
        self.reason = reason
        self.record_id = record_id


class TerminalStateError(ArchiveEngineError):
    """The record is ArchivedDeleted or ExemptionVoid and cannot change."""

    def __init__(self, message: str, record_id: str, status: str) -> None:
        super().__init__(
            message,
            code="TERMINAL_STATE",
            details={"record_id": record_id, "status": status},
        )
        self.record_id = record_id
        self.status = status


class InvalidTransitionError(ArchiveEngineError):
    """The operation is not valid from the record's current status."""

    def __init__(
        self,
        message: str,
        record_id: str,
        status: str,
        operation: str,
    ) -> None:
        super().__init__(
            message,
            code="INVALID_TRANSITION",
            details={"record_id": record_id, "status": status, "operation": operation},
        )
        self.record_id = record_id
        self.status = status
        self.operation = operation


class ImmutabilityError(ArchiveEngineError):
    """A write-once field was already set and a later write attempted to change it."""

    def __init__(self, message: str, record_id: str, field_name: str) -> None:
        super().__init__(
            message,
            code="IMMUTABLE_FIELD",
            details={"record_id": record_id, "field": field_name},
        )
        self.record_id = record_id
        self.field_name = field_name


class ResourceError(ArchiveEngineError, FileNotFoundError):
    """Content is unresolvable or unreadable.

    Subclasses FileNotFoundError so callers that only care about missing
    content can catch the builtin.
    """

    def __init__(self, message: str, asset_ref: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="RESOURCE_ERROR",
            details={"asset_ref": asset_ref},
        )
        self.asset_ref = asset_ref

    def __str__(self) -> str:
        return self.message


class RecordNotFoundError(ArchiveEngineError):
    """Archive record does not exist."""

    def __init__(self, record_id: str) -> None:
        super().__init__(
            f"Archive record not found: {record_id}",
            code="NOT_FOUND",
            details={"record_id": record_id},
        )
        self.record_id = record_id
