"""Pydantic models for demo bookings and availability answers."""

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class BookingRequest(BaseModel):
    """Details collected by the model before booking a demo.

    Everything is optional here so a partially filled request can be
    validated by the store, which reports every missing field at once.
    """

    organization: str = ""
    contact: str = ""
    phone: str = ""
    email: Optional[str] = None
    datetime: str = ""  # e.g. "Oct 20 at 9:00 AM"
    notes: Optional[str] = None


class Booking(BaseModel):
    """A booked demo.  Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    id: str
    organization: str
    contact: str
    phone: str
    email: Optional[str] = None
    datetime: str
    notes: Optional[str] = None
    booked_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(tz=dt.timezone.utc))
    status: Literal["scheduled"] = "scheduled"


class Availability(BaseModel):
    """Open demo slots for one resolved calendar date."""

    date: str            # display form, e.g. "Oct 20"
    weekday: str         # e.g. "Monday"
    slots: list[str] = []
    message: str = ""    # set when the date can't have demos (weekends)

    @property
    def is_weekend(self) -> bool:
        return self.weekday in ("Saturday", "Sunday")
