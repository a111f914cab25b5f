from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.models.event import EventType


class EventCreate(BaseModel):
    title: str
    description: Optional[str] = None
    start_date: datetime
    end_date: datetime
    type: EventType = EventType.MEETING
    is_recurring: bool = False
    recurrence: str = ""
    team_id: Optional[str] = None


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    type: Optional[EventType] = None
    is_recurring: Optional[bool] = None
    recurrence: Optional[str] = None
