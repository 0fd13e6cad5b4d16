"""Roadmap store: collection, active selection and optimistic writes.

Every mutation is applied locally first and then sent through the persistence
gateway. Local changes are described as :class:`Patch` objects over an
immutable :class:`StoreState`; the store swaps in a whole new state on each
change, so a reader never observes a half-applied mutation.

Rollback policy on gateway failure:

- ``add``: the inverse patch removes the speculative item.
- ``edit`` and ``delete``: the error is reported and local state is kept.

Deleting an item whose create is still in flight sends nothing; the row is
deleted once the create returns its uid.
"""

import asyncio
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from pydantic import ValidationError

from ethereal.core.logging import get_logger
from ethereal.schemas.roadmap import (
    ProgressStats,
    RoadmapItem,
    Topic,
    data_from_wire,
    data_to_wire,
)
from ethereal.services.gateway import KEY_FIELD, GatewayError, PersistenceGateway
from ethereal.services.progress import compute_progress
from ethereal.services.updates import flip_completed, update_at

logger = get_logger(__name__)

TEMP_ID_PREFIX = "tmp-"


@dataclass(frozen=True)
class StoreState:
    items: tuple[RoadmapItem, ...] = ()
    active_id: str | None = None

    def get(self, id: str | None) -> RoadmapItem | None:
        for item in self.items:
            if item.id == id:
                return item
        return None


StateFn = Callable[[StoreState], StoreState]


@dataclass(frozen=True)
class Patch:
    """A local change and, where the operation rolls back, its inverse."""

    description: str
    forward: StateFn
    inverse: StateFn | None = None


@dataclass(frozen=True)
class MutationResult:
    patch: Patch
    error: GatewayError | None = None
    item_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


ErrorListener = Callable[[str, GatewayError], None]


# ============================================================================
# State transitions
# ============================================================================


def repair_selection(state: StoreState) -> StoreState:
    """Point the selection at an existing item, the first one, or nothing."""
    if state.get(state.active_id) is not None:
        return state
    fallback = state.items[0].id if state.items else None
    if fallback == state.active_id:
        return state
    return replace(state, active_id=fallback)


def _append(item: RoadmapItem) -> StateFn:
    def forward(state: StoreState) -> StoreState:
        return replace(state, items=state.items + (item,), active_id=item.id)

    return forward


def _remove(id: str, restore_active: str | None = None) -> StateFn:
    def apply(state: StoreState) -> StoreState:
        items = tuple(i for i in state.items if i.id != id)
        active_id = restore_active if state.active_id == id else state.active_id
        return replace(state, items=items, active_id=active_id)

    return apply


def _rename(old_id: str, new_id: str) -> StateFn:
    def apply(state: StoreState) -> StoreState:
        items = tuple(i.model_copy(update={"id": new_id}) if i.id == old_id else i for i in state.items)
        active_id = new_id if state.active_id == old_id else state.active_id
        return replace(state, items=items, active_id=active_id)

    return apply


def _replace_data(id: str, data: list[Topic]) -> StateFn:
    def apply(state: StoreState) -> StoreState:
        items = tuple(i.model_copy(update={"data": data}) if i.id == id else i for i in state.items)
        return replace(state, items=items)

    return apply


def _deep_copy(data: Sequence[Topic]) -> list[Topic]:
    return [topic.model_copy(deep=True) for topic in data]


def _item_from_record(record: dict) -> RoadmapItem:
    return RoadmapItem(
        id=str(record[KEY_FIELD]),
        title=record.get("subject_name") or "",
        data=data_from_wire(record.get("roadmap_data") or []),
    )


# ============================================================================
# Store
# ============================================================================


class RoadmapStore:
    """Single source of truth for roadmaps and the active selection."""

    def __init__(self, gateway: PersistenceGateway, collection: str = "roadmap") -> None:
        self._gateway = gateway
        self._collection = collection
        self._state = StoreState()
        self._pending_edits = 0
        self._write_locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[ErrorListener] = []
        # Temp ids whose create has not completed yet
        self._pending_creates: set[str] = set()
        # temp id -> server uid, kept while any create is pending
        self._renamed: dict[str, str] = {}

    # -- reads ---------------------------------------------------------------

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def roadmaps(self) -> list[RoadmapItem]:
        return list(self._state.items)

    @property
    def active_id(self) -> str | None:
        return self._state.active_id

    @property
    def active(self) -> RoadmapItem | None:
        return self._state.get(self._state.active_id)

    @property
    def is_updating(self) -> bool:
        """True while any edit is waiting on the gateway."""
        return self._pending_edits > 0

    def get(self, id: str) -> RoadmapItem | None:
        return self._state.get(id)

    def progress(self, id: str) -> ProgressStats:
        item = self._require(id)
        return compute_progress(item.data)

    # -- plumbing ------------------------------------------------------------

    def subscribe(self, listener: ErrorListener) -> Callable[[], None]:
        """Register an error listener. Returns a callable that unregisters it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _apply(self, fn: StateFn) -> None:
        self._state = repair_selection(fn(self._state))

    def _report(self, operation: str, error: GatewayError) -> None:
        for listener in list(self._listeners):
            listener(operation, error)

    def _require(self, id: str) -> RoadmapItem:
        item = self._state.get(id)
        if item is None:
            raise ValueError(f"Roadmap {id} not found")
        return item

    def _write_lock(self, id: str) -> asyncio.Lock:
        lock = self._write_locks.get(id)
        if lock is None:
            lock = self._write_locks[id] = asyncio.Lock()
        return lock

    def _resolve(self, id: str | None) -> str | None:
        """Follow temp id renames to the id the item has now."""
        while id in self._renamed:
            id = self._renamed[id]
        return id

    def _finish_create(self, temp_id: str) -> None:
        self._pending_creates.discard(temp_id)
        self._write_locks.pop(temp_id, None)
        if not self._pending_creates:
            self._renamed.clear()

    # -- operations ----------------------------------------------------------

    async def load(self) -> MutationResult:
        """Replace the local collection with what the data store holds."""
        result = await self._gateway.read(self._collection, order=("created_at", True))
        if not result.ok:
            logger.error("Error loading roadmaps", error=str(result.error))
            self._report("load", result.error)
            return MutationResult(Patch("load", lambda s: s), error=result.error)

        items = []
        for record in result.data:
            try:
                items.append(_item_from_record(record))
            except (KeyError, ValidationError) as e:
                logger.warning("Skipping malformed roadmap", uid=record.get(KEY_FIELD), error=str(e))

        patch = Patch("load", lambda s: replace(s, items=tuple(items)))
        self._apply(patch.forward)
        loaded = {item.id for item in items}
        self._write_locks = {
            id: lock for id, lock in self._write_locks.items() if id in loaded or lock.locked()
        }
        logger.info("Roadmaps loaded", count=len(items))
        return MutationResult(patch)

    def select_active(self, id: str | None) -> None:
        """Set the active selection. The id is not checked."""
        self._state = replace(self._state, active_id=id)

    async def add(self, title: str, data: Sequence[Topic]) -> MutationResult:
        """Create a roadmap, selecting it before the write is confirmed.

        Raises:
            ValueError: If the title is blank
        """
        if not title.strip():
            raise ValueError("Name is required")

        temp_id = f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"
        item = RoadmapItem(id=temp_id, title=title, data=_deep_copy(data))
        previous_active = self._state.active_id

        def inverse(state: StoreState) -> StoreState:
            # The previous selection may itself have been a temp id renamed since
            return _remove(temp_id, restore_active=self._resolve(previous_active))(state)

        patch = Patch(f"add {temp_id}", forward=_append(item), inverse=inverse)
        self._apply(patch.forward)
        self._pending_creates.add(temp_id)

        try:
            result = await self._gateway.create(
                self._collection,
                {"subject_name": title, "roadmap_data": data_to_wire(item.data)},
            )
            error = result.error
            if error is None and not (result.data or {}).get(KEY_FIELD):
                error = GatewayError("create", self._collection, f"no {KEY_FIELD} returned")

            if error is not None:
                logger.error("Error adding roadmap", temp_id=temp_id, error=str(error))
                self._apply(patch.inverse)
                self._report("add", error)
                return MutationResult(patch, error=error)

            uid = str(result.data[KEY_FIELD])
            self._renamed[temp_id] = uid
            if self._state.get(temp_id) is None:
                return await self._discard_created(patch, uid)
            self._apply(_rename(temp_id, uid))
        finally:
            self._finish_create(temp_id)

        logger.info("Roadmap created", roadmap_id=uid, title=title)
        return MutationResult(patch, item_id=uid)

    async def _discard_created(self, patch: Patch, uid: str) -> MutationResult:
        """Delete a row whose temp item was removed while its create was in flight."""
        logger.info("Roadmap removed before create completed", roadmap_id=uid)
        result = await self._gateway.delete(self._collection, uid)
        if not result.ok:
            logger.error("Error deleting roadmap", roadmap_id=uid, error=str(result.error))
            self._report("delete", result.error)
            return MutationResult(patch, error=result.error, item_id=uid)
        return MutationResult(patch, item_id=uid)

    async def edit(self, id: str, data: Sequence[Topic]) -> MutationResult:
        """Replace a roadmap's data locally, then persist it.

        Writes for the same id reach the gateway in the order they were
        issued. A failed write is reported and the local data is kept.

        Raises:
            ValueError: If no roadmap has this id
        """
        self._require(id)
        new_data = _deep_copy(data)
        patch = Patch(f"edit {id}", forward=_replace_data(id, new_data))
        self._apply(patch.forward)

        logger.debug("Updating roadmap", roadmap_id=id)
        self._pending_edits += 1
        try:
            async with self._write_lock(id):
                result = await self._gateway.update(
                    self._collection, id, {"roadmap_data": data_to_wire(new_data)}
                )
        finally:
            self._pending_edits -= 1

        if not result.ok:
            logger.error("Error updating roadmap", roadmap_id=id, error=str(result.error))
            self._report("edit", result.error)
            return MutationResult(patch, error=result.error, item_id=id)

        logger.info("Roadmap updated", roadmap_id=id)
        return MutationResult(patch, item_id=id)

    async def delete(self, id: str) -> MutationResult:
        """Remove a roadmap locally, then from the data store.

        Raises:
            ValueError: If no roadmap has this id
        """
        self._require(id)
        patch = Patch(f"delete {id}", forward=_remove(id))
        self._apply(patch.forward)
        self._write_locks.pop(id, None)
        if id in self._pending_creates:
            # No row yet; the pending add deletes it once the uid is known
            logger.info("Roadmap deleted before create completed", temp_id=id)
            return MutationResult(patch, item_id=id)

        result = await self._gateway.delete(self._collection, id)
        if not result.ok:
            logger.error("Error deleting roadmap", roadmap_id=id, error=str(result.error))
            self._report("delete", result.error)
            return MutationResult(patch, error=result.error, item_id=id)

        logger.info("Roadmap deleted", roadmap_id=id)
        return MutationResult(patch, item_id=id)

    async def toggle_subtopic_completion(
        self,
        roadmap_id: str,
        topic_index: int,
        sub_index: int,
    ) -> MutationResult:
        """Flip one subtopic's completion flag and save the whole roadmap.

        Raises:
            ValueError: If no roadmap has this id
            IndexError: If either index is out of range
        """
        item = self._require(roadmap_id)
        new_data = update_at(item.data, (topic_index, sub_index), flip_completed)
        return await self.edit(roadmap_id, new_data)
