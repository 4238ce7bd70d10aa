"""Domain layer definitions."""

from .workspaces import Workspace

__all__ = [
    "Workspace",
]
