"""Planit marketplace backend: users, event planners and vendors."""

__version__ = "1.0.0"
