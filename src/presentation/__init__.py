"""Presentation layer package."""

from presentation.cli import main, local_run
from presentation.handler import handler, bridge_handler, status_handler

__all__ = ["main", "local_run", "handler", "bridge_handler", "status_handler"]
