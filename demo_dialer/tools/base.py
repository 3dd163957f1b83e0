"""Base class for model-callable tools."""

from abc import ABC, abstractmethod
from typing import Any


class BaseTool(ABC):
    """A named operation the speech model can invoke mid-call.

    Subclasses describe themselves with a JSON-schema ``parameters_schema``
    and return a JSON-serialisable dict from :meth:`execute`.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name as exposed to the model."""

    @property
    @abstractmethod
    def description(self) -> str:
        """One-line description the model uses to decide when to call it."""

    @property
    @abstractmethod
    def parameters_schema(self) -> dict:
        """JSON schema of the tool's arguments."""

    @abstractmethod
    async def execute(self, **kwargs: Any) -> dict:
        """Run the tool and return the structured reply."""

    def to_manifest(self) -> dict:
        """Realtime API function-tool entry for this tool."""
        return {
            "type": "function",
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters_schema,
        }
