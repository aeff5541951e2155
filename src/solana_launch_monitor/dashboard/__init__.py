"""Viewer relay package exports."""

from .app import create_app
from .state import BatchBuffers, ViewerChannel, ViewerHub

__all__ = ["create_app", "BatchBuffers", "ViewerChannel", "ViewerHub"]
