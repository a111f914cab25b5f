"""
Lifecycle Manager

Valid state transitions for tasks and team memberships, and validation of
event time ranges and recurrence flags.

Transition graphs are plain data (``TASK_TRANSITIONS``,
``MEMBERSHIP_TRANSITIONS``); the ``LifecycleManager`` applies them against
the store with compare-and-set writes so a transition computed from a stale
read never lands.
"""

import logging
from typing import Any, Dict, FrozenSet, List, Optional, Sequence

from app.core import ensure_utc
from app.core.errors import (
    AuthorizationDenied,
    EntityNotFound,
    InconsistentRecurrence,
    InvalidAssignee,
    InvalidTimeRange,
    InvalidTransition,
    MalformedRecurrenceRule,
)
from app.core.permissions import DenyReason
from app.core.recurrence import parse_rule
from app.models.event import Event
from app.models.task import Task, TaskStatus
from app.models.team import MemberStatus, TeamMember, TeamRole
from app.repositories.store import EntityStore

logger = logging.getLogger(__name__)


# =============================================================================
# Task status graph
# =============================================================================

TASK_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.TODO: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.IN_REVIEW, TaskStatus.CANCELLED}),
    # IN_REVIEW -> IN_PROGRESS is the explicit reopen edge
    TaskStatus.IN_REVIEW: frozenset({TaskStatus.DONE, TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.DONE: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

TERMINAL_TASK_STATUSES: FrozenSet[TaskStatus] = frozenset({TaskStatus.DONE, TaskStatus.CANCELLED})

# Forward chain along which non-adjacent requests are expanded
TASK_MAIN_CHAIN: Sequence[TaskStatus] = (
    TaskStatus.TODO,
    TaskStatus.IN_PROGRESS,
    TaskStatus.IN_REVIEW,
    TaskStatus.DONE,
)


def plan_task_transition(current: TaskStatus, target: TaskStatus) -> List[TaskStatus]:
    """
    Return the statuses a task passes through to get from ``current`` to ``target``.

    Empty when nothing changes. Adjacent edges give a one-step path; a forward
    jump along the main chain is expanded into its intermediate steps.
    Raises InvalidTransition for anything else, including every request out
    of a terminal status.
    """
    if current == target:
        return []
    if current in TERMINAL_TASK_STATUSES:
        raise InvalidTransition(current, target)
    if target in TASK_TRANSITIONS[current]:
        return [target]
    if current in TASK_MAIN_CHAIN and target in TASK_MAIN_CHAIN:
        start = TASK_MAIN_CHAIN.index(current)
        end = TASK_MAIN_CHAIN.index(target)
        if end > start:
            return list(TASK_MAIN_CHAIN[start + 1 : end + 1])
    raise InvalidTransition(current, target)


def is_valid_status_path(path: Sequence[TaskStatus]) -> bool:
    """True if every consecutive pair in ``path`` is an edge of the task graph."""
    return all(b in TASK_TRANSITIONS[a] for a, b in zip(path, path[1:]))


# =============================================================================
# Membership status graph (None = membership removed)
# =============================================================================

MEMBERSHIP_TRANSITIONS: Dict[MemberStatus, FrozenSet[Optional[MemberStatus]]] = {
    MemberStatus.PENDING: frozenset({MemberStatus.ACTIVE, None}),
    MemberStatus.ACTIVE: frozenset({MemberStatus.INACTIVE, None}),
    MemberStatus.INACTIVE: frozenset({MemberStatus.ACTIVE}),
}


def check_membership_transition(current: MemberStatus, target: Optional[MemberStatus]) -> None:
    if target not in MEMBERSHIP_TRANSITIONS[current]:
        raise InvalidTransition(current, target)


# =============================================================================
# Event validation
# =============================================================================


def validate_event(event: Event) -> None:
    """Raise InvalidTimeRange or InconsistentRecurrence if the event cannot be stored."""
    start = ensure_utc(event.start_date)
    end = ensure_utc(event.end_date)
    if start > end:
        raise InvalidTimeRange(start, end)

    rule = (event.recurrence or "").strip()
    if not event.is_recurring:
        if rule:
            raise InconsistentRecurrence("Non-recurring event carries a recurrence rule")
        return

    if event.is_occurrence:
        raise InconsistentRecurrence("A materialized occurrence cannot itself recur")
    if not rule:
        raise InconsistentRecurrence("Recurring event has no recurrence rule")
    try:
        parse_rule(rule)
    except MalformedRecurrenceRule as e:
        raise InconsistentRecurrence(f"Unusable recurrence rule: {e.detail}") from e


class LifecycleManager:
    """Applies validated transitions through the entity store."""

    def __init__(self, store: EntityStore):
        self.store = store

    async def apply_task_transition(
        self, task: Task, new_status: TaskStatus, fields: Optional[Dict[str, Any]] = None
    ) -> Task:
        """
        Move a task to ``new_status`` in a single write.

        Intermediate steps of a shortcut are appended to ``status_history``
        in the same write, so no observer ever sees them as the committed
        status. Other ``fields`` land in that same write. Raises StoreConflict
        if the stored status moved since ``task`` was read.
        """
        path = plan_task_transition(task.status, new_status)
        if not path:
            return await self.store.update(task, fields) if fields else task

        updated = await self.store.update(
            task,
            {**(fields or {}), "status": new_status.value},
            expected={"status": task.status.value},
            push={"status_history": {"$each": [s.value for s in path]}},
        )
        logger.info(
            f"Task {task.id}: {task.status.value} -> {new_status.value}"
            + (f" via {[s.value for s in path[:-1]]}" if len(path) > 1 else "")
        )
        return updated

    async def apply_membership_transition(
        self, membership: TeamMember, new_status: Optional[MemberStatus]
    ) -> Optional[TeamMember]:
        """
        Move a membership to ``new_status``; ``None`` removes it.

        Returns the updated membership, or None once removed. Taking the last
        ACTIVE OWNER out of its team is refused with AuthorizationDenied.
        """
        current = membership.status
        if new_status == current:
            return membership
        check_membership_transition(current, new_status)

        if membership.is_active_owner:
            await self._ensure_other_owner(membership)

        if new_status is None:
            if not await self.store.delete(membership):
                raise EntityNotFound(TeamMember.__name__, membership.id)
            logger.info(f"Membership {membership.id} of user {membership.user_id} removed from team {membership.team_id}")
            return None

        updated = await self.store.update(
            membership,
            {"status": new_status.value},
            expected={"status": current.value},
        )
        logger.info(f"Membership {membership.id}: {current.value} -> {new_status.value}")
        return updated

    async def change_member_role(self, membership: TeamMember, role: TeamRole) -> TeamMember:
        if role == membership.role:
            return membership
        if membership.is_active_owner and role != TeamRole.OWNER:
            await self._ensure_other_owner(membership)
        return await self.store.update(
            membership,
            {"role": role.value},
            expected={"role": membership.role.value},
        )

    async def validate_assignee(self, team_id: str, assignee_id: Optional[str]) -> None:
        if assignee_id is None:
            return
        membership = await self.store.find_membership(assignee_id, team_id)
        if membership is None or not membership.is_active:
            raise InvalidAssignee(assignee_id, team_id)

    async def _ensure_other_owner(self, membership: TeamMember) -> None:
        active = await self.store.list_active_members(membership.team_id)
        if not any(m.role == TeamRole.OWNER and m.user_id != membership.user_id for m in active):
            raise AuthorizationDenied(DenyReason.SOLE_OWNER)
