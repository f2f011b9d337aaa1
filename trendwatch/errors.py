"""
Error taxonomy for the trend scoring engine.

RETRYABLE vs NON-RETRYABLE:
- StorageError is transient; batch drivers retry the current item with backoff.
- AdapterError is local to one source/candidate; the batch skips and continues.
- NotFoundError, ValidationError and MergeError are permanent for the given input.
"""

from typing import Any, Optional


class TrendwatchError(Exception):
    """Base class for all engine errors."""

    retryable: bool = False

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "context": {
                key: value if isinstance(value, (str, int, bool, type(None))) else str(value)
                for key, value in self.context.items()
            },
        }


class NotFoundError(TrendwatchError):
    """Referenced product or signal does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found", {"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class StorageError(TrendwatchError):
    """Persistence layer unavailable or failed."""

    retryable = True

    def __init__(self, operation: str, original_error: Optional[BaseException] = None):
        detail = f": {original_error}" if original_error else ""
        super().__init__(f"Storage failure during {operation}{detail}", {"operation": operation})
        self.operation = operation
        self.original_error = original_error


class AdapterError(TrendwatchError):
    """Source adapter unreachable, blocked, timed out or returned malformed data."""

    def __init__(
        self,
        source: str,
        message: str,
        candidate: Optional[str] = None,
        blocked: bool = False,
    ):
        super().__init__(
            f"[{source}] {message}",
            {"source": source, "candidate": candidate, "blocked": blocked},
        )
        self.source = source
        self.candidate = candidate
        self.blocked = blocked


class ValidationError(TrendwatchError):
    """Malformed input rejected before anything is stored."""


class LifecycleError(ValidationError):
    """Status transition not allowed from the product's current state."""

    def __init__(self, product_id: int, from_status: str, to_status: str, reason: str = ""):
        message = f"Product {product_id} cannot move {from_status} -> {to_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            {"product_id": product_id, "from": from_status, "to": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class MergeError(TrendwatchError):
    """Merge aborted; the transaction was rolled back."""

    def __init__(self, duplicate_id: int, target_id: int, cause: BaseException):
        super().__init__(
            f"Merge of {duplicate_id} into {target_id} failed: {cause}",
            {"duplicate_id": duplicate_id, "target_id": target_id},
        )
        self.cause = cause
