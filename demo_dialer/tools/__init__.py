"""Model-callable tools for the demo-booking agent."""

from .availability import CheckAvailabilityTool
from .base import BaseTool
from .booking import BookDemoTool
from .dispatcher import ToolDispatcher

__all__ = ["BaseTool", "BookDemoTool", "CheckAvailabilityTool", "ToolDispatcher"]
