"""Routes model tool invocations to tools and shapes every reply.

Whatever happens inside a tool, the dispatcher returns a dict the bridge
can hand back to the model.  Tool failures never end the call.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterable

from demo_dialer.errors import UnknownToolError, ValidationError
from demo_dialer.tools.base import BaseTool

logger = logging.getLogger(__name__)


class ToolDispatcher:
    """Name → tool lookup plus structured error replies."""

    def __init__(self, tools: Iterable[BaseTool]) -> None:
        self._tools: dict[str, BaseTool] = {tool.name: tool for tool in tools}

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def manifest(self) -> list[dict]:
        """Function-tool entries for the realtime ``session.update``."""
        return [tool.to_manifest() for tool in self._tools.values()]

    async def dispatch(self, name: str, arguments: dict | str | None = None) -> dict:
        """Run tool ``name`` and return its reply (or a structured failure)."""
        try:
            tool = self._tools.get(name)
            if tool is None:
                raise UnknownToolError(name)
            args = self._parse_arguments(arguments)
            logger.info("Calling tool %s with args: %s", name, sorted(args))
            return await tool.execute(**args)
        except UnknownToolError as exc:
            logger.warning("Model requested unknown tool %r", exc.tool_name)
            return {"success": False, "error": "unknown_tool", "message": exc.detail}
        except ValidationError as exc:
            logger.info("Tool %s rejected: %s", name, exc.detail)
            return {
                "success": False,
                "error": "validation_error",
                "message": exc.detail,
                "missing": exc.missing,
            }

    @staticmethod
    def _parse_arguments(arguments: dict | str | None) -> dict[str, Any]:
        if arguments is None or arguments == "":
            return {}
        if isinstance(arguments, dict):
            return dict(arguments)
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError as exc:
            raise ValidationError(f"Tool arguments are not valid JSON: {exc.msg}") from exc
        if not isinstance(parsed, dict):
            raise ValidationError("Tool arguments must be a JSON object.")
        return parsed
