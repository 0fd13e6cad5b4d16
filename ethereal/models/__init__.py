"""Database models."""

from ethereal.models.roadmap import RoadmapRecord

__all__ = [
    "RoadmapRecord",
]
