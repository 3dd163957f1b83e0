"""Pydantic model for the lead behind one outbound call."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CallSession(BaseModel):
    """Lead metadata captured when an outbound call is initiated.

    Looked up by correlation id once the media stream reports its start
    event.  Never mutated after creation; the registry only deletes it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    phone_number: str
    name: str
    company: str
    email: Optional[str] = None
    attempt_number: int = 1
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))


class CallRequest(BaseModel):
    """Body of ``POST /make-call``.  Presence is checked by the endpoint."""

    to: str = ""
    name: str = ""
    company: str = ""
    email: Optional[str] = None

    def missing_fields(self) -> list[str]:
        return [f for f in ("to", "name", "company") if not getattr(self, f).strip()]
