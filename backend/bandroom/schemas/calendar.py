"""
Calendar feed payload. Reservation events are all-day with an exclusive end
date; meeting events carry full instants.
"""

from datetime import date, datetime
from typing import Literal, Union

from pydantic import BaseModel


class CalendarEventResponse(BaseModel):
    kind: Literal["meeting", "reservation"]
    id: int
    title: str
    start: Union[datetime, date]
    end: Union[datetime, date]
    all_day: bool

    model_config = {"from_attributes": True}
