"""Domain-specific exceptions for the dialer.

Tool errors (``ValidationError``, ``UnknownToolError``) only ever shape a
tool's reply.  Transport errors end the affected call and nothing else.
"""

from __future__ import annotations

from typing import Any


class DialerError(Exception):
    default_detail: str = "Dialer error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class ValidationError(DialerError):
    default_detail = "Missing required booking fields."

    def __init__(self, detail: str | None = None, missing: list[str] | None = None) -> None:
        self.missing = list(missing or [])
        if detail is None and self.missing:
            detail = "Missing required fields: " + ", ".join(self.missing)
        super().__init__(detail)


class UnknownToolError(DialerError):
    default_detail = "Unknown tool."

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Unknown tool: {tool_name}")
        self.tool_name = tool_name


class TransportError(DialerError):
    default_detail = "Call transport closed unexpectedly."


class UpstreamModelError(DialerError):
    default_detail = "Speech model reported an error."

    def __init__(self, payload: dict[str, Any] | None = None) -> None:
        self.payload = dict(payload or {})
        message = self.payload.get("message") or self.payload.get("code")
        super().__init__(str(message) if message else None)
