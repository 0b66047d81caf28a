"""Media tool package."""

from infrastructure.media.tools import ToolRunner, ToolResult

__all__ = ["ToolRunner", "ToolResult"]
