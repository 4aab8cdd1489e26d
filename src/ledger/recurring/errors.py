from __future__ import annotations


class RecurringError(Exception):
    pass


class RuleValidationError(RecurringError):
    """Raised before any write when a rule or request argument is invalid."""

    def __init__(self, problems: list[str] | str):
        self.problems = [problems] if isinstance(problems, str) else list(problems)
        super().__init__("; ".join(self.problems))


class RuleNotFoundError(RecurringError):
    def __init__(self, rule_id: int):
        self.rule_id = rule_id
        super().__init__(f"recurring rule {rule_id} not found")


class StateConflictError(RecurringError):
    """Raised when a lifecycle transition is not allowed from the rule's current state."""


class AlreadyPausedError(StateConflictError):
    def __init__(self, rule_id: int):
        self.rule_id = rule_id
        super().__init__(f"recurring rule {rule_id} is already paused")


class AlreadyActiveError(StateConflictError):
    def __init__(self, rule_id: int):
        self.rule_id = rule_id
        super().__init__(f"recurring rule {rule_id} is already active")


class PersistenceError(RecurringError):
    """A store call failed; the caller should roll back and may retry the whole operation."""
