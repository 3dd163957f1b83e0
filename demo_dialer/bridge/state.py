"""Per-call relay state."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from demo_dialer.models.lead import CallSession


class BridgePhase(str, Enum):
    CONNECTING = "connecting"            # model socket not open yet
    AWAITING_STREAM = "awaiting_stream"  # model open, no stream id yet
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class BridgeState:
    """Everything one bridge mutates.  Only the bridge's consumer task writes it."""

    phase: BridgePhase = BridgePhase.CONNECTING
    stream_sid: Optional[str] = None
    call_id: str = ""
    call_session: Optional[CallSession] = None

    # model → telephony audio that arrived before the stream id
    outbound_buffer: deque = field(default_factory=deque)
    buffer_drained: bool = False

    # telephony → model audio appended since the last commit
    pending_chunks: int = 0

    response_in_flight: bool = False
    greeting_requested: bool = False
    session_configured: bool = False
    model_open: bool = False
    tool_followup_pending: bool = False

    @property
    def stream_known(self) -> bool:
        return bool(self.stream_sid)

    @property
    def terminal(self) -> bool:
        return self.phase in (BridgePhase.CLOSING, BridgePhase.CLOSED)

    def release(self) -> None:
        """Drop per-call data once the call is over."""
        self.outbound_buffer.clear()
        self.pending_chunks = 0
        self.response_in_flight = False
        self.tool_followup_pending = False
        self.model_open = False
        self.call_session = None
