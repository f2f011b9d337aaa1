"""Summary returned by batch operations instead of raising on partial failure."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class BatchSummary:
    """Counts for one batch run."""

    updated: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    aborted: bool = False

    def add_error(self, message: str) -> None:
        self.failed += 1
        self.errors.append(message)

    def merge(self, other: "BatchSummary") -> None:
        self.updated += other.updated
        self.skipped += other.skipped
        self.failed += other.failed
        self.errors.extend(other.errors)
        self.aborted = self.aborted or other.aborted

    def to_dict(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "errors": list(self.errors),
            "aborted": self.aborted,
        }
