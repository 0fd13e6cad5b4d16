"""Pydantic schemas."""

from ethereal.schemas.roadmap import (
    EditorContent,
    ProgressStats,
    RoadmapCreate,
    RoadmapData,
    RoadmapEdit,
    RoadmapItem,
    RoadmapResponse,
    RoadmapTab,
    RoadmapViewState,
    SubTopic,
    SubTopicView,
    Topic,
    TopicView,
    data_from_wire,
    data_to_wire,
)

__all__ = [
    "SubTopic",
    "Topic",
    "RoadmapData",
    "RoadmapItem",
    "ProgressStats",
    "RoadmapCreate",
    "RoadmapEdit",
    "RoadmapResponse",
    "RoadmapTab",
    "SubTopicView",
    "TopicView",
    "RoadmapViewState",
    "EditorContent",
    "data_from_wire",
    "data_to_wire",
]
