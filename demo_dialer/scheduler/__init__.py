"""Demo slot catalog and booking ledger."""

from .catalog import DEMO_SLOTS, TimeSlot, resolve_when
from .store import SchedulingStore

__all__ = ["DEMO_SLOTS", "SchedulingStore", "TimeSlot", "resolve_when"]
