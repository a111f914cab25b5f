"""
Team Service

Team and membership operations. Every mutation runs under the team's lock:
the membership behind the authorization decision is read inside the lock,
in the same critical section as the write.
"""

import logging
from typing import List, Optional

from app.core.errors import EntityNotFound, StoreConflict
from app.core.lifecycle import LifecycleManager
from app.core.permissions import AccessControl, Action, require
from app.models.team import MemberStatus, Team, TeamMember, TeamRole
from app.models.user import User
from app.repositories.store import EntityStore
from app.schemas.team import TeamCreate, TeamMemberAdd, TeamMemberUpdate, TeamUpdate

logger = logging.getLogger(__name__)


class TeamService:
    def __init__(self, store: EntityStore):
        self.store = store
        self.access = AccessControl(store)
        self.lifecycle = LifecycleManager(store)

    async def get_team(self, actor: User, team_id: str) -> Team:
        team = await self.store.get(Team, team_id)
        require(await self.access.authorize(actor, Action.TEAM_READ, team))
        return team

    async def list_teams(self, actor: User) -> List[Team]:
        """Teams the actor is an ACTIVE member of. Pending invitations are not listed."""
        return await self.store.list_user_teams(actor.id)

    async def list_members(self, actor: User, team_id: str) -> List[TeamMember]:
        team = await self.get_team(actor, team_id)
        return await self.store.list_members(team.id)

    async def create_team(self, actor: User, team_in: TeamCreate) -> Team:
        """Create a team; the creator becomes its first ACTIVE OWNER."""
        team = await self.store.create(
            Team(name=team_in.name, description=team_in.description, creator_id=actor.id)
        )
        owner = TeamMember(user_id=actor.id, team_id=team.id, role=TeamRole.OWNER)
        try:
            await self.store.create(owner)
        except Exception:
            # A team without an owner must not survive
            await self.store.delete(team)
            raise
        logger.info(f"Team {team.id} created by user {actor.id}")
        return team

    async def update_team(self, actor: User, team_id: str, team_in: TeamUpdate) -> Team:
        async with self.store.team_lock(team_id):
            team = await self.store.get(Team, team_id)
            require(await self.access.authorize(actor, Action.TEAM_UPDATE, team))
            fields = team_in.model_dump(exclude_unset=True)
            if fields.get("name", "") is None:
                del fields["name"]
            if not fields:
                return team
            return await self.store.update(team, fields)

    async def delete_team(self, actor: User, team_id: str) -> None:
        async with self.store.team_lock(team_id):
            team = await self.store.get(Team, team_id)
            require(await self.access.authorize(actor, Action.TEAM_DELETE, team))
            await self.store.purge_team(team)
        logger.info(f"Team {team_id} deleted by user {actor.id}")

    async def add_member(self, actor: User, team_id: str, member_in: TeamMemberAdd) -> TeamMember:
        async with self.store.team_lock(team_id):
            team = await self.store.get(Team, team_id)
            await self.store.get(User, member_in.user_id)

            proposed = TeamMember(
                user_id=member_in.user_id,
                team_id=team.id,
                role=member_in.role,
                status=member_in.initial_status,
            )
            require(
                await self.access.authorize(actor, Action.MEMBER_ADD, proposed, new_role=member_in.role)
            )
            if await self.store.find_membership(member_in.user_id, team.id) is not None:
                raise StoreConflict(f"User {member_in.user_id} is already a member of team {team.id}")

            member = await self.store.create(proposed)
        logger.info(
            f"User {member.user_id} added to team {team_id} as {member.role.value} ({member.status.value})"
        )
        return member

    async def respond_to_invitation(self, actor: User, team_id: str, accept: bool) -> Optional[TeamMember]:
        """Accept (PENDING -> ACTIVE) or decline (PENDING -> removed) the actor's own invitation."""
        async with self.store.team_lock(team_id):
            membership = await self._membership(actor.id, team_id)
            require(await self.access.authorize(actor, Action.MEMBER_RESPOND, membership))
            target = MemberStatus.ACTIVE if accept else None
            return await self.lifecycle.apply_membership_transition(membership, target)

    async def set_member_status(
        self, actor: User, team_id: str, user_id: str, status: MemberStatus
    ) -> Optional[TeamMember]:
        async with self.store.team_lock(team_id):
            membership = await self._membership(user_id, team_id)
            require(
                await self.access.authorize(actor, Action.MEMBER_SET_STATUS, membership, new_status=status)
            )
            return await self.lifecycle.apply_membership_transition(membership, status)

    async def change_member_role(
        self, actor: User, team_id: str, user_id: str, member_in: TeamMemberUpdate
    ) -> TeamMember:
        async with self.store.team_lock(team_id):
            membership = await self._membership(user_id, team_id)
            require(
                await self.access.authorize(
                    actor, Action.MEMBER_CHANGE_ROLE, membership, new_role=member_in.role
                )
            )
            return await self.lifecycle.change_member_role(membership, member_in.role)

    async def remove_member(self, actor: User, team_id: str, user_id: str) -> None:
        async with self.store.team_lock(team_id):
            membership = await self._membership(user_id, team_id)
            require(await self.access.authorize(actor, Action.MEMBER_REMOVE, membership))
            await self._remove(membership)

    async def leave_team(self, actor: User, team_id: str) -> None:
        async with self.store.team_lock(team_id):
            membership = await self._membership(actor.id, team_id)
            require(await self.access.authorize(actor, Action.MEMBER_LEAVE, membership))
            await self._remove(membership)

    async def _remove(self, membership: TeamMember) -> None:
        # INACTIVE memberships must be reactivated before they can be removed
        await self.lifecycle.apply_membership_transition(membership, None)

    async def _membership(self, user_id: str, team_id: str) -> TeamMember:
        membership = await self.store.find_membership(user_id, team_id)
        if membership is None:
            raise EntityNotFound(TeamMember.__name__, f"{user_id}@{team_id}")
        return membership
