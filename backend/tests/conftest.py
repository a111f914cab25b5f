"""
Shared test fixtures and configuration.

Environment variables are set BEFORE any app imports to prevent
accidental connections to real databases.
"""

import os
import sys

# Ensure the backend app is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Override settings before any app code imports the settings singleton
os.environ["MONGODB_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "test_team_calendar"
os.environ["MATERIALIZER_ENABLED"] = "false"
os.environ["TEAM_LOCK_WAIT_SECONDS"] = "0.2"

import pytest  # noqa: E402

from app.models.team import Team, TeamRole  # noqa: E402
from app.models.user import UserRole  # noqa: E402
from tests.mocks.factories import make_membership, make_user  # noqa: E402
from tests.mocks.store import InMemoryStore  # noqa: E402


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def owner():
    return make_user("owner")


@pytest.fixture
def team_admin():
    return make_user("teamadmin")


@pytest.fixture
def member():
    return make_user("member")


@pytest.fixture
def outsider():
    return make_user("outsider")


@pytest.fixture
def global_admin():
    return make_user("root", role=UserRole.ADMIN)


@pytest.fixture
def team(store, owner, team_admin, member, outsider, global_admin):
    """A team with an OWNER, an ADMIN and a MEMBER. All users exist in the store."""
    team = Team(id="team-1", name="Platform", creator_id=owner.id)
    store.add(owner, team_admin, member, outsider, global_admin, team)
    store.add(
        make_membership(owner, team, role=TeamRole.OWNER),
        make_membership(team_admin, team, role=TeamRole.ADMIN),
        make_membership(member, team),
    )
    return team
