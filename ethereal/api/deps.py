"""API dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from ethereal.services.roadmap_store import RoadmapStore
from ethereal.services.roadmap_view import RoadmapView


def get_store(request: Request) -> RoadmapStore:
    """Get the roadmap store created at startup."""
    return request.app.state.roadmap_store


def get_view(request: Request) -> RoadmapView:
    """Get the roadmap panel view-model created at startup."""
    return request.app.state.roadmap_view


StoreDep = Annotated[RoadmapStore, Depends(get_store)]
ViewDep = Annotated[RoadmapView, Depends(get_view)]
