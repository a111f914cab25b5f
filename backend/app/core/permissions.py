"""
Access Control

Team-role-scoped authorization for teams, memberships, tasks and events.

``decide`` is the pure decision table; ``AccessControl.authorize`` resolves
the actor's membership through the store and then asks ``decide``. Neither
raises on a denial: a Deny is a value, and the request layer turns it into
a rejection.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Tuple, Union

from app.core.errors import AuthorizationDenied
from app.core.roles import ResolvedMembership, RoleResolver
from app.models.event import Event
from app.models.task import Task
from app.models.team import MemberStatus, Team, TeamMember, TeamRole
from app.models.user import User, UserRole
from app.repositories.store import EntityStore

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """Everything an actor can ask to do to a resource."""

    # ==========================================================================
    # Team
    # ==========================================================================
    TEAM_READ = "team:read"
    TEAM_UPDATE = "team:update"
    TEAM_DELETE = "team:delete"

    # ==========================================================================
    # Membership
    # ==========================================================================
    MEMBER_ADD = "member:add"
    MEMBER_REMOVE = "member:remove"
    MEMBER_CHANGE_ROLE = "member:change_role"
    MEMBER_SET_STATUS = "member:set_status"
    MEMBER_RESPOND = "member:respond"  # accept/decline own pending membership
    MEMBER_LEAVE = "member:leave"

    # ==========================================================================
    # Task
    # ==========================================================================
    TASK_READ = "task:read"
    TASK_CREATE = "task:create"
    TASK_UPDATE = "task:update"
    TASK_CHANGE_STATUS = "task:change_status"
    TASK_REASSIGN = "task:reassign"
    TASK_DELETE = "task:delete"
    TASK_COMMENT = "task:comment"

    # ==========================================================================
    # Event
    # ==========================================================================
    EVENT_READ = "event:read"
    EVENT_CREATE = "event:create"
    EVENT_UPDATE = "event:update"
    EVENT_DELETE = "event:delete"


MEMBERSHIP_MANAGEMENT_ACTIONS: FrozenSet[Action] = frozenset(
    {
        Action.MEMBER_ADD,
        Action.MEMBER_REMOVE,
        Action.MEMBER_CHANGE_ROLE,
        Action.MEMBER_SET_STATUS,
    }
)

# Actions that can take an ACTIVE OWNER out of a team
OWNER_REMOVING_ACTIONS: FrozenSet[Action] = frozenset(
    {
        Action.MEMBER_REMOVE,
        Action.MEMBER_LEAVE,
        Action.MEMBER_CHANGE_ROLE,
        Action.MEMBER_SET_STATUS,
    }
)

TASK_AUTHOR_ACTIONS: FrozenSet[Action] = frozenset(
    {
        Action.TASK_UPDATE,
        Action.TASK_CHANGE_STATUS,
        Action.TASK_REASSIGN,
        Action.TASK_DELETE,
    }
)

# An assignee may move the task along and comment on it, nothing more
TASK_ASSIGNEE_ACTIONS: FrozenSet[Action] = frozenset({Action.TASK_CHANGE_STATUS, Action.TASK_COMMENT})

TEAM_MANAGER_ROLES: FrozenSet[TeamRole] = frozenset({TeamRole.OWNER, TeamRole.ADMIN})


class DenyReason:
    INSUFFICIENT_ROLE = "insufficient_role"
    NOT_A_MEMBER = "not_a_member"
    MEMBERSHIP_INACTIVE = "membership_inactive"
    SOLE_OWNER = "sole_owner"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOW = Decision(allowed=True)


def deny(reason: str = DenyReason.INSUFFICIENT_ROLE) -> Decision:
    return Decision(allowed=False, reason=reason)


def require(decision: Decision) -> None:
    """Turn a Deny into AuthorizationDenied for callers that reject by raising."""
    if not decision.allowed:
        raise AuthorizationDenied(decision.reason or DenyReason.INSUFFICIENT_ROLE)


Resource = Union[Team, TeamMember, Task, Event]


@dataclass(frozen=True)
class AccessContext:
    """Store state a decision depends on, resolved before calling ``decide``."""

    membership: Optional[ResolvedMembership] = None
    active_owner_ids: Tuple[str, ...] = ()
    # Role being granted by MEMBER_CHANGE_ROLE
    new_role: Optional[TeamRole] = None
    # Status being set by MEMBER_SET_STATUS
    new_status: Optional[MemberStatus] = None


def team_id_of(resource: Resource) -> Optional[str]:
    if isinstance(resource, Team):
        return resource.id
    return resource.team_id


def _would_orphan_team(action: Action, target: TeamMember, ctx: AccessContext) -> bool:
    """True if the action would leave the team without an ACTIVE OWNER."""
    if not target.is_active_owner:
        return False
    if action == Action.MEMBER_CHANGE_ROLE and ctx.new_role == TeamRole.OWNER:
        return False
    if action == Action.MEMBER_SET_STATUS and ctx.new_status == target.status:
        return False
    others = [uid for uid in ctx.active_owner_ids if uid != target.user_id]
    return not others


def decide(actor: User, action: Action, resource: Resource, ctx: AccessContext) -> Decision:
    """
    Decide whether ``actor`` may perform ``action`` on ``resource``.

    Rules, first match wins:
    0. Never leave a team without an ACTIVE OWNER (applies to everyone)
    1. Global ADMIN may do anything else
    2. Personal events belong to their creator alone
    3. Own pending membership may be answered by its user
    4. Team-scoped actions need an ACTIVE membership, then role/authorship rules
    Anything unmatched is denied with "insufficient_role".
    """
    if (
        action in OWNER_REMOVING_ACTIONS
        and isinstance(resource, TeamMember)
        and _would_orphan_team(action, resource, ctx)
    ):
        return deny(DenyReason.SOLE_OWNER)

    if actor.role == UserRole.ADMIN:
        return ALLOW

    if isinstance(resource, Event) and resource.is_personal:
        return _decide_personal_event(actor, action, resource)

    if action == Action.MEMBER_RESPOND:
        if (
            isinstance(resource, TeamMember)
            and resource.user_id == actor.id
            and resource.status == MemberStatus.PENDING
        ):
            return ALLOW
        return deny()

    membership = ctx.membership
    if membership is None:
        return deny(DenyReason.NOT_A_MEMBER)
    if not membership.is_active:
        return deny(DenyReason.MEMBERSHIP_INACTIVE)

    if isinstance(resource, Team):
        return _decide_team(action, membership.role)
    if isinstance(resource, TeamMember):
        return _decide_membership(actor, action, resource, membership.role, ctx.new_role)
    if isinstance(resource, Task):
        return _decide_task(actor, action, resource, membership.role)
    if isinstance(resource, Event):
        return _decide_team_event(actor, action, resource, membership.role)
    return deny()


def _decide_personal_event(actor: User, action: Action, event: Event) -> Decision:
    if action in (Action.EVENT_CREATE, Action.EVENT_READ, Action.EVENT_UPDATE, Action.EVENT_DELETE):
        if event.creator_id == actor.id:
            return ALLOW
    return deny()


def _decide_team(action: Action, role: TeamRole) -> Decision:
    if action == Action.TEAM_READ:
        return ALLOW
    if action == Action.TEAM_UPDATE and role in TEAM_MANAGER_ROLES:
        return ALLOW
    if action == Action.TEAM_DELETE and role == TeamRole.OWNER:
        return ALLOW
    return deny()


def _decide_membership(
    actor: User,
    action: Action,
    target: TeamMember,
    role: TeamRole,
    new_role: Optional[TeamRole],
) -> Decision:
    if action == Action.MEMBER_LEAVE:
        return ALLOW if target.user_id == actor.id else deny()

    if action not in MEMBERSHIP_MANAGEMENT_ACTIONS or role not in TEAM_MANAGER_ROLES:
        return deny()

    if role == TeamRole.ADMIN:
        # Only an OWNER may touch OWNER memberships or hand out ownership
        if target.role == TeamRole.OWNER or new_role == TeamRole.OWNER:
            return deny()
    return ALLOW


def _decide_task(actor: User, action: Action, task: Task, role: TeamRole) -> Decision:
    if action in (Action.TASK_READ, Action.TASK_CREATE, Action.TASK_COMMENT):
        return ALLOW
    if role in TEAM_MANAGER_ROLES:
        return ALLOW
    if task.creator_id == actor.id and action in TASK_AUTHOR_ACTIONS:
        return ALLOW
    if task.assignee_id == actor.id and action in TASK_ASSIGNEE_ACTIONS:
        return ALLOW
    return deny()


def _decide_team_event(actor: User, action: Action, event: Event, role: TeamRole) -> Decision:
    if action in (Action.EVENT_READ, Action.EVENT_CREATE):
        return ALLOW
    if role in TEAM_MANAGER_ROLES:
        return ALLOW
    if event.creator_id == actor.id and action in (Action.EVENT_UPDATE, Action.EVENT_DELETE):
        return ALLOW
    return deny()


class AccessControl:
    """Resolves membership context from the store and applies ``decide``."""

    def __init__(self, store: EntityStore):
        self.store = store
        self.roles = RoleResolver(store)

    async def authorize(
        self,
        actor: User,
        action: Action,
        resource: Resource,
        new_role: Optional[TeamRole] = None,
        new_status: Optional[MemberStatus] = None,
    ) -> Decision:
        team_id = team_id_of(resource)
        membership = None
        owners: Tuple[str, ...] = ()

        if team_id is not None:
            if actor.role != UserRole.ADMIN:
                membership = await self.roles.resolve_team_role(actor.id, team_id)
            if action in OWNER_REMOVING_ACTIONS:
                owners = tuple(await self.roles.active_owner_ids(team_id))

        decision = decide(
            actor,
            action,
            resource,
            AccessContext(
                membership=membership,
                active_owner_ids=owners,
                new_role=new_role,
                new_status=new_status,
            ),
        )
        if not decision.allowed:
            logger.info(
                f"Denied {action.value} for user {actor.id} on {type(resource).__name__} "
                f"{resource.id}: {decision.reason}"
            )
        return decision
