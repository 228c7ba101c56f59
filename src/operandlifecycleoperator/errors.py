"""Error classification and aggregated deletion outcomes."""

from __future__ import annotations

__all__ = (
    "AggregateDeletionError",
    "DeletionOutcome",
    "MalformedObjectError",
    "OperandFailure",
    "is_conflict",
    "is_not_found",
)

from dataclasses import dataclass, field

from kubernetes.client.exceptions import ApiException


def is_not_found(error: BaseException) -> bool:
    """Whether an API error reports a missing resource."""
    return isinstance(error, ApiException) and error.status == 404


def is_conflict(error: BaseException) -> bool:
    """Whether an API error is a 409.

    On create this means the resource already exists. On replace or patch
    it means the resource was modified after it was read.
    """
    return isinstance(error, ApiException) and error.status == 409


class MalformedObjectError(ValueError):
    """Raised when a resource lacks fields it must have."""


@dataclass
class OperandFailure:
    """A failure to remove one operand."""

    operand: str
    registry: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.registry}/{self.operand}: {self.error}"


@dataclass
class DeletionOutcome:
    """The result of removing a set of operands.

    Failures are collected rather than raised so that one broken operand
    does not block the cleanup of the others.
    """

    deleted: list[str] = field(default_factory=list)
    deferred: list[str] = field(default_factory=list)
    failures: list[OperandFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def pending(self) -> list[str]:
        """Names of operands that still need a deletion attempt."""
        return self.deferred + [f.operand for f in self.failures]

    def raise_for_failures(self) -> None:
        """Raise `AggregateDeletionError` if any deletion failed."""
        if self.failures:
            raise AggregateDeletionError(self.failures)


class AggregateDeletionError(Exception):
    """Several operands could not be removed."""

    def __init__(self, failures: list[OperandFailure]) -> None:
        self.failures = list(failures)
        details = "; ".join(str(f) for f in self.failures)
        super().__init__(
            f"Failed to remove {len(self.failures)} operand(s): {details}"
        )
