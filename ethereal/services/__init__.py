"""Service layer modules."""

from ethereal.services import (
    gateway,
    progress,
    roadmap_store,
    roadmap_view,
    updates,
    validator,
)

__all__ = [
    "gateway",
    "progress",
    "roadmap_store",
    "roadmap_view",
    "updates",
    "validator",
]
