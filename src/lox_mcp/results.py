"""Result types returned by the tool and resource dispatchers.

Dispatchers never raise: every call ends in one of these, and the MCP
server converts them to protocol types at the transport edge.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from mcp import types

from lox_mcp.constants import MIME_TEXT


@dataclass
class DispatchResult:
    """Outcome of a tool call."""

    content: list[str] = field(default_factory=list)
    """Ordered text content items."""

    is_error: bool = False

    @classmethod
    def success(cls, message: str) -> "DispatchResult":
        return cls(content=[message], is_error=False)

    @classmethod
    def failure(cls, message: str) -> "DispatchResult":
        return cls(content=[message], is_error=True)

    @property
    def text(self) -> str:
        """All content items joined, handy for logs and tests."""
        return "\n".join(self.content)

    def to_call_tool_result(self) -> types.CallToolResult:
        """Convert to the MCP CallToolResult shape."""
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=item) for item in self.content],
            isError=self.is_error,
        )


@dataclass
class ResourceResult:
    """Outcome of a resource read."""

    uri: str
    text: str
    mime_type: str = MIME_TEXT
    is_error: bool = False

    @classmethod
    def success(cls, uri: str, text: str, mime_type: str) -> "ResourceResult":
        return cls(uri=uri, text=text, mime_type=mime_type)

    @classmethod
    def failure(cls, uri: str, message: str) -> "ResourceResult":
        return cls(uri=uri, text=f"Error: {message}", mime_type=MIME_TEXT, is_error=True)
