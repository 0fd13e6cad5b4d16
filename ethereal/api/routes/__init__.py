"""API routes."""

from ethereal.api.routes import roadmaps

__all__ = ["roadmaps"]
