"""
Core Error Taxonomy

Rejections (authorization, transitions, validation) are returned to the
caller and never retried. Store errors carry a ``retryable`` flag so the
request layer can surface them as transient failures and the materializer
can leave them for the next tick.
"""

from typing import Any, Optional


class CoreError(Exception):
    """Base class for every error raised by the authorization/materialization core."""

    retryable: bool = False


class AuthorizationDenied(CoreError):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Authorization denied: {reason}")


class InvalidTransition(CoreError):
    def __init__(self, from_state: Any, to_state: Any):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(f"Invalid transition: {_label(from_state)} -> {_label(to_state)}")


class InvalidTimeRange(CoreError):
    def __init__(self, start: Any, end: Any):
        self.start = start
        self.end = end
        super().__init__(f"Event start {start} is after end {end}")


class InconsistentRecurrence(CoreError):
    """is_recurring and the recurrence rule disagree, or the rule does not parse."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class InvalidAssignee(CoreError):
    def __init__(self, user_id: str, team_id: str):
        self.user_id = user_id
        self.team_id = team_id
        super().__init__(f"User {user_id} is not an active member of team {team_id}")


class MalformedRecurrenceRule(CoreError):
    def __init__(self, rule: str, detail: str, template_id: Optional[str] = None):
        self.rule = rule
        self.detail = detail
        self.template_id = template_id
        where = f" (template {template_id})" if template_id else ""
        super().__init__(f"Malformed recurrence rule {rule!r}{where}: {detail}")


class DuplicateOccurrence(CoreError):
    def __init__(self, template_id: str, occurrence_start: Any):
        self.template_id = template_id
        self.occurrence_start = occurrence_start
        super().__init__(f"Occurrence {occurrence_start} of template {template_id} already exists")


class StoreError(CoreError):
    """Base class for failures reported by the entity store."""


class EntityNotFound(StoreError):
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class StoreConflict(StoreError):
    """A concurrent writer got there first; re-read and retry."""

    retryable = True


class StoreUnavailable(StoreError):
    """The store did not answer in time or the connection failed."""

    retryable = True


def _label(value: Any) -> str:
    if value is None:
        return "removed"
    return getattr(value, "value", str(value))
