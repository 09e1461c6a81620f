"""
Typed domain errors for the scheduler.

Callers can distinguish a rejected score from a failed commit or a plan that
was already closed by another caller, and map each to a user-facing message.
"""


class DomainError(Exception):
    """Base class for all domain-specific errors."""


class InvalidScore(DomainError):
    """Score outside the 0-5 recall scale."""

    def __init__(self, score: int) -> None:
        self.score = score
        super().__init__(f"Score {score} is outside the 0-5 range")


class PersistenceFailure(DomainError):
    """The record store refused or failed to commit a transaction."""

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Could not save {operation}{detail}")


class MissingRelation(DomainError):
    """A review plan points at an item that does not exist."""

    def __init__(self, plan_id: str, item_id: str) -> None:
        self.plan_id = plan_id
        self.item_id = item_id
        super().__init__(f"Plan {plan_id} references missing item {item_id}")


class PlanNotFound(DomainError):
    def __init__(self, plan_id: str) -> None:
        self.plan_id = plan_id
        super().__init__(f"Review plan {plan_id} not found")


class PlanAlreadyClosed(DomainError):
    """A write targeted a plan that is already completed or skipped."""

    def __init__(self, plan_id: str, status: str) -> None:
        self.plan_id = plan_id
        self.status = status
        super().__init__(f"Review plan {plan_id} is already {status}")
