"""Exceptions raised by the planner."""


class PlannerError(Exception):
    """Base class for planner errors."""


class InfeasiblePlanError(PlannerError):
    """A plan cannot be committed: capacity is exceeded or nothing could be placed."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result


class PriorStateMissing(PlannerError):
    """A revision cannot be continued because its memory state or rating is unavailable."""


class SessionNotFoundError(PlannerError):
    pass


class SessionAlreadyCompletedError(PlannerError):
    pass


class PersistenceError(PlannerError):
    """Wraps any failure of the underlying store."""
