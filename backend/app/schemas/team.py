from typing import Optional

from pydantic import BaseModel

from app.models.team import MemberStatus, TeamRole


class TeamBase(BaseModel):
    name: str
    description: Optional[str] = None


class TeamCreate(TeamBase):
    pass


class TeamUpdate(TeamBase):
    name: Optional[str] = None


class TeamMemberAdd(BaseModel):
    user_id: str
    role: TeamRole = TeamRole.MEMBER
    # Invited members start PENDING and must accept; others join ACTIVE
    invite: bool = False

    @property
    def initial_status(self) -> MemberStatus:
        return MemberStatus.PENDING if self.invite else MemberStatus.ACTIVE


class TeamMemberUpdate(BaseModel):
    role: TeamRole
