"""
backend/errors.py

Typed exceptions surfaced to callers. Guard skips (cooldown, rate limit) and
collaborator failures are NOT exceptions — they become outcome records.
"""

from __future__ import annotations


class NotFoundError(Exception):
    """An entity referenced by id does not exist."""

    entity: str = "entity"

    def __init__(self, entity_id: str) -> None:
        super().__init__(f"{self.entity} {entity_id!r} not found")
        self.entity_id = entity_id


class RuleNotFound(NotFoundError):
    entity = "rule"


class AlertNotFound(NotFoundError):
    entity = "alert"


class IncidentNotFound(NotFoundError):
    entity = "incident"


class EnvironmentNotFound(NotFoundError):
    entity = "environment"


class ExecutionNotFound(NotFoundError):
    entity = "execution"


class MaintenanceWindowNotFound(NotFoundError):
    entity = "maintenance window"


class ConditionParseError(ValueError):
    """A rule condition could not be parsed; rejected at rule creation time."""
