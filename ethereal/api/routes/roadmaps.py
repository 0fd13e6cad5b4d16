"""Roadmap API routes."""

from fastapi import APIRouter, HTTPException, status

from ethereal.api.deps import StoreDep, ViewDep
from ethereal.core.logging import get_logger
from ethereal.schemas.roadmap import (
    EditorContent,
    ProgressStats,
    RoadmapCreate,
    RoadmapEdit,
    RoadmapResponse,
    RoadmapViewState,
)
from ethereal.services.roadmap_store import MutationResult
from ethereal.services.validator import RoadmapValidationError, example_template

logger = get_logger(__name__)
router = APIRouter(prefix="/roadmaps", tags=["roadmaps"])


def _raise_for_gateway(result: MutationResult, detail: str) -> None:
    if result.error is not None:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"{detail}: {result.error.message}",
        )


def _not_found(e: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _invalid(e: RoadmapValidationError) -> HTTPException:
    return HTTPException(status_code=422, detail=e.message)


@router.get("", response_model=RoadmapViewState)
async def get_panel(view: ViewDep) -> RoadmapViewState:
    """Render the roadmap panel: tabs, active roadmap, progress."""
    return view.snapshot()


@router.post("", response_model=RoadmapViewState, status_code=status.HTTP_201_CREATED)
async def add_roadmap(data: RoadmapCreate, view: ViewDep) -> RoadmapViewState:
    """Add a roadmap from a subject name and raw JSON."""
    try:
        result = await view.add(data.title, data.raw_json)
    except RoadmapValidationError as e:
        raise _invalid(e) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    _raise_for_gateway(result, "Failed to create roadmap")
    return view.snapshot()


@router.get("/template")
async def get_template() -> dict:
    """Example body for the Add Roadmap form."""
    return {"raw_json": example_template()}


@router.post("/topics/{index}/expand", response_model=RoadmapViewState)
async def toggle_topic_expand(index: int, view: ViewDep) -> RoadmapViewState:
    """Expand or collapse a topic of the active roadmap."""
    view.toggle_topic_expand(index)
    return view.snapshot()


@router.post("/delete/confirm", response_model=RoadmapViewState)
async def confirm_delete(view: ViewDep) -> RoadmapViewState:
    """Delete the roadmap awaiting confirmation."""
    try:
        result = await view.confirm_delete()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    _raise_for_gateway(result, "Failed to delete roadmap")
    return view.snapshot()


@router.post("/delete/cancel", response_model=RoadmapViewState)
async def cancel_delete(view: ViewDep) -> RoadmapViewState:
    view.cancel_delete()
    return view.snapshot()


@router.post("/notice/dismiss", response_model=RoadmapViewState)
async def dismiss_notice(view: ViewDep) -> RoadmapViewState:
    view.dismiss_notice()
    return view.snapshot()


@router.get("/{roadmap_id}", response_model=RoadmapResponse)
async def get_roadmap(roadmap_id: str, store: StoreDep) -> RoadmapResponse:
    """Get a roadmap by ID."""
    item = store.get(roadmap_id)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Roadmap not found",
        )
    return RoadmapResponse(
        id=item.id,
        title=item.title,
        data=item.data,
        progress=store.progress(item.id),
    )


@router.get("/{roadmap_id}/progress", response_model=ProgressStats)
async def get_roadmap_progress(roadmap_id: str, store: StoreDep) -> ProgressStats:
    try:
        return store.progress(roadmap_id)
    except ValueError as e:
        raise _not_found(e) from e


@router.post("/{roadmap_id}/select", response_model=RoadmapViewState)
async def select_roadmap(roadmap_id: str, view: ViewDep) -> RoadmapViewState:
    """Switch the active tab."""
    view.select(roadmap_id)
    return view.snapshot()


@router.get("/{roadmap_id}/json", response_model=EditorContent)
async def open_editor(roadmap_id: str, view: ViewDep) -> EditorContent:
    """Serialized roadmap body for the Edit JSON form."""
    try:
        return view.open_editor(roadmap_id)
    except ValueError as e:
        raise _not_found(e) from e


@router.put("/{roadmap_id}/data", response_model=RoadmapViewState)
async def edit_roadmap(roadmap_id: str, data: RoadmapEdit, view: ViewDep) -> RoadmapViewState:
    """Replace a roadmap's topics with hand-edited JSON."""
    try:
        result = await view.edit(roadmap_id, data.raw_json)
    except RoadmapValidationError as e:
        raise _invalid(e) from e
    except ValueError as e:
        raise _not_found(e) from e
    _raise_for_gateway(result, "Failed to save roadmap")
    return view.snapshot()


@router.post(
    "/{roadmap_id}/topics/{topic_index}/subtopics/{sub_index}/toggle",
    response_model=RoadmapViewState,
)
async def toggle_subtopic(
    roadmap_id: str,
    topic_index: int,
    sub_index: int,
    view: ViewDep,
) -> RoadmapViewState:
    """Flip a subtopic's completion flag."""
    try:
        result = await view.toggle_subtopic(roadmap_id, topic_index, sub_index)
    except IndexError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except ValueError as e:
        raise _not_found(e) from e
    _raise_for_gateway(result, "Failed to save progress")
    return view.snapshot()


@router.delete("/{roadmap_id}", response_model=RoadmapViewState)
async def request_delete(roadmap_id: str, view: ViewDep) -> RoadmapViewState:
    """Ask for confirmation before deleting a roadmap."""
    try:
        view.request_delete(roadmap_id)
    except ValueError as e:
        raise _not_found(e) from e
    return view.snapshot()
