"""
Role Resolver

Read-only lookups of a user's global role and of their membership in a team.
A non-ACTIVE membership still resolves; callers decide what it is worth.
"""

from dataclasses import dataclass
from typing import List, Optional

from app.models.team import MemberStatus, TeamMember, TeamRole
from app.models.user import User, UserRole
from app.repositories.store import EntityStore


@dataclass(frozen=True)
class ResolvedMembership:
    role: TeamRole
    status: MemberStatus

    @property
    def is_active(self) -> bool:
        return self.status == MemberStatus.ACTIVE


class RoleResolver:
    def __init__(self, store: EntityStore):
        self.store = store

    async def resolve_team_role(self, user_id: str, team_id: str) -> Optional[ResolvedMembership]:
        """Role and status of the user in the team, or None when they are not a member."""
        membership = await self.store.find_membership(user_id, team_id)
        return resolved_from(membership)

    async def resolve_global_role(self, user_id: str) -> UserRole:
        user = await self.store.get(User, user_id)
        return user.role

    async def active_owner_ids(self, team_id: str) -> List[str]:
        members = await self.store.list_active_members(team_id)
        return [m.user_id for m in members if m.role == TeamRole.OWNER]


def resolved_from(membership: Optional[TeamMember]) -> Optional[ResolvedMembership]:
    if membership is None:
        return None
    return ResolvedMembership(role=membership.role, status=membership.status)
