"""Roadmap panel view-model.

Holds the panel's local state (expanded topics, pending delete confirmation,
the last error notice), turns user intents into store calls and builds the
render snapshot. It never touches the roadmap collection directly.
"""

from ethereal.core.logging import get_logger
from ethereal.schemas.roadmap import (
    EditorContent,
    RoadmapTab,
    RoadmapViewState,
    SubTopicView,
    TopicView,
)
from ethereal.services.gateway import GatewayError
from ethereal.services.progress import compute_progress, is_topic_complete, topic_progress
from ethereal.services.roadmap_store import MutationResult, RoadmapStore
from ethereal.services.validator import JSON_MUST_BE_ARRAY, serialize, validate

logger = get_logger(__name__)

SAVE_FAILED_NOTICE = "Failed to save progress. Please check your connection."
NAME_REQUIRED = "Name is required"
NO_SELECTION_TITLE = "Select Roadmap"


class RoadmapView:
    def __init__(self, store: RoadmapStore) -> None:
        self.store = store
        self.expanded_topics: set[int] = {0}
        self.notice: str | None = None
        self.pending_delete_id: str | None = None
        self._shown_id: str | None = store.active_id
        store.subscribe(self._on_store_error)

    def _on_store_error(self, operation: str, error: GatewayError) -> None:
        # Only failed saves get a blocking notice; other failures are logged by the store
        if operation == "edit":
            self.notice = SAVE_FAILED_NOTICE

    def _sync_selection(self) -> None:
        """Repair a dangling selection and reset expansion when it changes."""
        roadmaps = self.store.roadmaps
        if roadmaps and self.store.active is None:
            self.store.select_active(roadmaps[0].id)
        if self.store.active_id != self._shown_id:
            self._shown_id = self.store.active_id
            self.expanded_topics = {0}

    # -- intents -------------------------------------------------------------

    def select(self, id: str) -> None:
        self.store.select_active(id)
        self._sync_selection()

    def toggle_topic_expand(self, index: int) -> None:
        if index in self.expanded_topics:
            self.expanded_topics.discard(index)
        else:
            self.expanded_topics.add(index)

    async def add(self, title: str, raw_json: str) -> MutationResult:
        """Add Roadmap form submit.

        Raises:
            ValueError: If the name is blank
            RoadmapValidationError: If the JSON is rejected
        """
        if not title.strip():
            raise ValueError(NAME_REQUIRED)
        data = validate(raw_json, shape_message=JSON_MUST_BE_ARRAY)
        result = await self.store.add(title, data)
        self._sync_selection()
        return result

    async def edit(self, id: str, raw_json: str) -> MutationResult:
        """Edit JSON form submit.

        Raises:
            RoadmapValidationError: If the JSON is rejected
            ValueError: If no roadmap has this id
        """
        data = validate(raw_json)
        return await self.store.edit(id, data)

    async def toggle_subtopic(self, id: str, topic_index: int, sub_index: int) -> MutationResult:
        return await self.store.toggle_subtopic_completion(id, topic_index, sub_index)

    def request_delete(self, id: str) -> None:
        """Ask for confirmation before deleting."""
        if self.store.get(id) is None:
            raise ValueError(f"Roadmap {id} not found")
        self.pending_delete_id = id

    def cancel_delete(self) -> None:
        self.pending_delete_id = None

    async def confirm_delete(self) -> MutationResult:
        if self.pending_delete_id is None:
            raise ValueError("No delete awaiting confirmation")
        id, self.pending_delete_id = self.pending_delete_id, None
        logger.info("Roadmap delete confirmed", roadmap_id=id)
        result = await self.store.delete(id)
        self._sync_selection()
        return result

    def dismiss_notice(self) -> None:
        self.notice = None

    def open_editor(self, id: str | None = None) -> EditorContent:
        """Current roadmap body, serialized for the Edit JSON form."""
        item = self.store.get(id) if id is not None else self.store.active
        if item is None:
            raise ValueError(f"Roadmap {id} not found" if id else "No roadmap selected")
        return EditorContent(id=item.id, raw_json=serialize(item.data))

    # -- rendering -----------------------------------------------------------

    def snapshot(self) -> RoadmapViewState:
        self._sync_selection()
        active = self.store.active
        is_updating = self.store.is_updating

        topics = []
        if active is not None:
            for index, topic in enumerate(active.data):
                completed, total = topic_progress(topic)
                topics.append(
                    TopicView(
                        index=index,
                        name=topic.name,
                        completed_count=completed,
                        total=total,
                        is_complete=is_topic_complete(topic),
                        expanded=index in self.expanded_topics,
                        subtopics=[
                            SubTopicView(
                                index=sub_index,
                                subtopic_name=sub.subtopic_name,
                                resource_url=sub.resource_url,
                                completed=sub.completed,
                            )
                            for sub_index, sub in enumerate(topic.subtopics)
                        ],
                    )
                )

        return RoadmapViewState(
            roadmaps=[
                RoadmapTab(id=r.id, title=r.title, active=r.id == self.store.active_id)
                for r in self.store.roadmaps
            ],
            active_id=self.store.active_id,
            title=active.title if active is not None else NO_SELECTION_TITLE,
            topics=topics,
            progress=compute_progress(active.data) if active is not None and not is_updating else None,
            is_updating=is_updating,
            notice=self.notice,
            pending_delete_id=self.pending_delete_id,
        )
