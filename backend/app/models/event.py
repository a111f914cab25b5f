import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.models.types import PyObjectId


class EventType(str, Enum):
    MEETING = "MEETING"
    DEADLINE = "DEADLINE"
    REMINDER = "REMINDER"
    PERSONAL = "PERSONAL"


class Event(BaseModel):
    """
    Calendar event.

    Three shapes share this model:
    - plain event: is_recurring=False, template_id=None
    - template: is_recurring=True with a recurrence rule; holds the rule and is
      hidden from calendars once materialized_through is set
    - occurrence: is_recurring=False, template_id/occurrence_start point back
      at the template slot it was generated for
    """

    id: PyObjectId = Field(default_factory=lambda: str(uuid.uuid4()), alias="_id")
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    type: EventType = EventType.MEETING
    is_recurring: bool = False
    recurrence: str = ""
    team_id: Optional[str] = None
    creator_id: str

    template_id: Optional[str] = None
    occurrence_start: Optional[datetime] = None
    materialized_through: Optional[datetime] = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        populate_by_name = True

    @property
    def is_personal(self) -> bool:
        return self.team_id is None

    @property
    def is_template(self) -> bool:
        return self.is_recurring

    @property
    def is_occurrence(self) -> bool:
        return self.template_id is not None
