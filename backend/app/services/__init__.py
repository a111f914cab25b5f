from app.services.events import EventService
from app.services.tasks import TaskService
from app.services.teams import TeamService

__all__ = ["EventService", "TaskService", "TeamService"]
