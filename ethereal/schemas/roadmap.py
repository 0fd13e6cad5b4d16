"""Roadmap schemas for the store, the view and the API."""

from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    model_serializer,
    model_validator,
)


class SubTopic(BaseModel):
    """A single learning item with a resource link and completion flag."""

    model_config = ConfigDict(frozen=True)

    subtopic_name: str
    resource_url: str
    completed: bool = False


class Topic(BaseModel):
    """A named group of subtopics.

    Stored as a single-key object ``{"<name>": [subtopic, ...]}``. Validation
    accepts that form as well as ``{"name": ..., "subtopics": ...}``; dumping
    always produces the single-key form so stored rows keep their shape.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    subtopics: list[SubTopic]

    @model_validator(mode="before")
    @classmethod
    def _from_single_key(cls, value: Any) -> Any:
        if not isinstance(value, dict) or set(value) == {"name", "subtopics"}:
            return value
        if len(value) != 1:
            raise ValueError(f"topic must have exactly one key, got {len(value)}")
        ((name, subtopics),) = value.items()
        return {"name": name, "subtopics": subtopics}

    @model_serializer(mode="wrap")
    def _to_single_key(self, handler: Any) -> dict[str, Any]:
        dumped = handler(self)
        return {dumped["name"]: dumped["subtopics"]}


RoadmapData = list[Topic]

roadmap_data_adapter: TypeAdapter[list[Topic]] = TypeAdapter(list[Topic])


def data_from_wire(raw: Any) -> list[Topic]:
    """Build topics from their stored form. Raises pydantic.ValidationError."""
    return roadmap_data_adapter.validate_python(raw)


def data_to_wire(data: list[Topic]) -> list[dict[str, Any]]:
    """Dump topics to their stored single-key form."""
    return roadmap_data_adapter.dump_python(data, mode="json")


class RoadmapItem(BaseModel):
    """A roadmap owned by the store."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    data: list[Topic]


class ProgressStats(BaseModel):
    """Derived completion counts for one roadmap."""

    total: int = 0
    completed: int = 0
    percentage: int = 0


# ============================================================================
# Requests
# ============================================================================


class RoadmapCreate(BaseModel):
    """Add Roadmap form: subject name and a raw JSON blob."""

    title: str
    raw_json: str = "[]"


class RoadmapEdit(BaseModel):
    """Edit JSON form."""

    raw_json: str


# ============================================================================
# Responses
# ============================================================================


class RoadmapResponse(BaseModel):
    """A roadmap with its derived progress."""

    id: str
    title: str
    data: list[Topic]
    progress: ProgressStats


class RoadmapTab(BaseModel):
    id: str
    title: str
    active: bool


class SubTopicView(BaseModel):
    index: int
    subtopic_name: str
    resource_url: str
    completed: bool


class TopicView(BaseModel):
    index: int
    name: str
    completed_count: int
    total: int
    is_complete: bool
    expanded: bool
    subtopics: list[SubTopicView]


class RoadmapViewState(BaseModel):
    """Everything the roadmap panel renders."""

    roadmaps: list[RoadmapTab]
    active_id: str | None
    title: str
    topics: list[TopicView]
    progress: ProgressStats | None  # hidden while a save is in flight
    is_updating: bool
    notice: str | None = None
    pending_delete_id: str | None = None


class EditorContent(BaseModel):
    """Serialized roadmap body for the Edit JSON form."""

    id: str
    raw_json: str
