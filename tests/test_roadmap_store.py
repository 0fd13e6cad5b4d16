"""Tests for the roadmap store."""

import asyncio

import pytest

from ethereal.schemas.roadmap import data_from_wire
from ethereal.services.roadmap_store import (
    TEMP_ID_PREFIX,
    RoadmapStore,
    StoreState,
    repair_selection,
)
from tests.conftest import TOPIC_A, RecordingGateway, make_record


def _data(*topics: dict):
    return data_from_wire(list(topics))


# ============================================================================
# load / select
# ============================================================================


@pytest.mark.asyncio
async def test_load_maps_records(store: RoadmapStore) -> None:
    item = store.get("r1")
    assert item is not None
    assert item.title == "X"
    assert item.data[0].name == "Topic A"
    assert store.active_id == "r1"


@pytest.mark.asyncio
async def test_load_skips_malformed_records() -> None:
    gateway = RecordingGateway(
        {
            "roadmap": [
                make_record("good", "Good"),
                make_record("bad", "Bad", [{"A": [], "B": []}]),
            ]
        }
    )
    store = RoadmapStore(gateway)
    result = await store.load()
    assert result.ok
    assert [r.id for r in store.roadmaps] == ["good"]


@pytest.mark.asyncio
async def test_load_failure_is_reported() -> None:
    gateway = RecordingGateway()
    gateway.fail.add("read")
    store = RoadmapStore(gateway)
    seen = []
    store.subscribe(lambda op, err: seen.append(op))

    result = await store.load()
    assert not result.ok
    assert seen == ["load"]
    assert store.roadmaps == []


@pytest.mark.asyncio
async def test_select_active_is_unchecked(store: RoadmapStore) -> None:
    store.select_active("missing")
    assert store.active_id == "missing"
    assert store.active is None


class TestRepairSelection:
    def test_keeps_valid_selection(self) -> None:
        state = StoreState(items=(), active_id=None)
        assert repair_selection(state) is state

    @pytest.mark.asyncio
    async def test_falls_back_to_first(self, store: RoadmapStore) -> None:
        state = StoreState(items=tuple(store.roadmaps), active_id="gone")
        assert repair_selection(state).active_id == "r1"

    def test_empty_means_none(self) -> None:
        assert repair_selection(StoreState(items=(), active_id="gone")).active_id is None


# ============================================================================
# add
# ============================================================================


@pytest.mark.asyncio
async def test_add_reconciles_server_id(store: RoadmapStore, gateway: RecordingGateway) -> None:
    result = await store.add("New Subject", _data(TOPIC_A))

    assert result.ok
    assert not result.item_id.startswith(TEMP_ID_PREFIX)
    assert [r.id for r in store.roadmaps] == ["r1", result.item_id]
    assert store.active_id == result.item_id

    (record,) = gateway.calls_to("create")
    assert record["subject_name"] == "New Subject"
    assert record["roadmap_data"] == [TOPIC_A]


@pytest.mark.asyncio
async def test_add_selects_before_confirmation(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.gates["create"] = asyncio.Event()
    task = asyncio.create_task(store.add("Pending", []))
    await asyncio.sleep(0)

    temp_id = store.active_id
    assert temp_id.startswith(TEMP_ID_PREFIX)
    assert store.get(temp_id).title == "Pending"

    gateway.gates["create"].set()
    result = await task
    assert store.get(temp_id) is None
    assert store.active_id == result.item_id


@pytest.mark.asyncio
async def test_add_keeps_selection_moved_away(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.gates["create"] = asyncio.Event()
    task = asyncio.create_task(store.add("Pending", []))
    await asyncio.sleep(0)

    store.select_active("r1")
    gateway.gates["create"].set()
    await task
    assert store.active_id == "r1"


@pytest.mark.asyncio
async def test_add_failure_rolls_back(store: RoadmapStore, gateway: RecordingGateway) -> None:
    before = store.state
    gateway.fail.add("create")
    errors = []
    store.subscribe(lambda op, err: errors.append((op, err.message)))

    result = await store.add("New Subject", [])

    assert not result.ok
    assert store.roadmaps == list(before.items)
    # Previous selection is restored
    assert store.active_id == "r1"
    assert errors == [("add", "connection refused")]


@pytest.mark.asyncio
async def test_add_failure_on_empty_store_clears_selection() -> None:
    gateway = RecordingGateway()
    gateway.fail.add("create")
    store = RoadmapStore(gateway)

    await store.add("New Subject", [])
    assert store.roadmaps == []
    assert store.active_id is None


@pytest.mark.asyncio
async def test_add_blank_title_rejected(store: RoadmapStore, gateway: RecordingGateway) -> None:
    with pytest.raises(ValueError, match="Name is required"):
        await store.add("   ", [])
    assert gateway.calls == []
    assert len(store.roadmaps) == 1


@pytest.mark.asyncio
async def test_delete_during_add_removes_created_row(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.gates["create"] = asyncio.Event()
    task = asyncio.create_task(store.add("Pending", []))
    await asyncio.sleep(0)
    temp_id = store.active_id

    deleted = await store.delete(temp_id)
    assert deleted.ok
    # Nothing to delete remotely until the server assigns a uid
    assert gateway.calls_to("delete") == []
    assert store.active_id == "r1"

    gateway.gates["create"].set()
    added = await task
    assert added.ok
    assert gateway.calls_to("delete") == [added.item_id]
    assert [r.id for r in store.roadmaps] == ["r1"]
    assert [r["subject_name"] for r in gateway.rows("roadmap")] == ["X"]

    reloaded = RoadmapStore(gateway)
    await reloaded.load()
    assert [r.id for r in reloaded.roadmaps] == ["r1"]


@pytest.mark.asyncio
async def test_add_failure_restores_selection_renamed_meanwhile(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.gates["create"] = asyncio.Event()
    gateway.reject = lambda op, payload: op == "create" and payload["subject_name"] == "B"

    first = asyncio.create_task(store.add("A", []))
    await asyncio.sleep(0)
    second = asyncio.create_task(store.add("B", []))
    await asyncio.sleep(0)

    gateway.gates["create"].set()
    a, b = await asyncio.gather(first, second)

    assert a.ok
    assert not b.ok
    assert [r.id for r in store.roadmaps] == ["r1", a.item_id]
    assert store.active_id == a.item_id


@pytest.mark.asyncio
async def test_write_locks_do_not_outlive_ids(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.gates["create"] = asyncio.Event()
    add = asyncio.create_task(store.add("Pending", []))
    await asyncio.sleep(0)
    temp_id = store.active_id
    await store.edit(temp_id, [])
    await store.edit("r1", [])
    assert set(store._write_locks) == {temp_id, "r1"}

    gateway.gates["create"].set()
    added = await add
    assert set(store._write_locks) == {"r1"}

    await gateway.delete("roadmap", "r1")
    await store.load()
    assert [r.id for r in store.roadmaps] == [added.item_id]
    assert store._write_locks == {}


# ============================================================================
# edit
# ============================================================================


@pytest.mark.asyncio
async def test_edit_replaces_data(store: RoadmapStore, gateway: RecordingGateway) -> None:
    new_data = _data({"Other": []}, {"Second": []})
    result = await store.edit("r1", new_data)

    assert result.ok
    assert [t.name for t in store.get("r1").data] == ["Other", "Second"]
    (call,) = gateway.calls_to("update")
    assert call == ("r1", {"roadmap_data": [{"Other": []}, {"Second": []}]})
    assert gateway.rows("roadmap")[0]["roadmap_data"] == [{"Other": []}, {"Second": []}]


@pytest.mark.asyncio
async def test_edit_failure_keeps_optimistic_state(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.fail.add("update")
    errors = []
    store.subscribe(lambda op, err: errors.append(op))

    result = await store.edit("r1", _data({"Local": []}))

    assert not result.ok
    assert store.get("r1").data[0].name == "Local"
    assert errors == ["edit"]


@pytest.mark.asyncio
async def test_edit_unknown_id(store: RoadmapStore, gateway: RecordingGateway) -> None:
    with pytest.raises(ValueError, match="not found"):
        await store.edit("missing", [])
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_edit_does_not_alias_input(store: RoadmapStore) -> None:
    new_data = _data({"Mine": []})
    await store.edit("r1", new_data)
    new_data.append(_data({"Later": []})[0])
    assert [t.name for t in store.get("r1").data] == ["Mine"]


@pytest.mark.asyncio
async def test_is_updating_while_edit_in_flight(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.gates["update"] = asyncio.Event()
    task = asyncio.create_task(store.edit("r1", []))
    await asyncio.sleep(0)
    assert store.is_updating

    gateway.gates["update"].set()
    await task
    assert not store.is_updating


@pytest.mark.asyncio
async def test_concurrent_edits_reach_gateway_in_order(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.gates["update"] = asyncio.Event()
    first = asyncio.create_task(store.edit("r1", _data({"First": []})))
    second = asyncio.create_task(store.edit("r1", _data({"Second": []})))
    await asyncio.sleep(0)

    # Latest local edit is visible while both are pending
    assert store.get("r1").data[0].name == "Second"

    gateway.gates["update"].set()
    await asyncio.gather(first, second)

    names = [patch["roadmap_data"][0] for _, patch in gateway.calls_to("update")]
    assert names == [{"First": []}, {"Second": []}]
    assert gateway.rows("roadmap")[0]["roadmap_data"] == [{"Second": []}]
    assert store.get("r1").data[0].name == "Second"


# ============================================================================
# delete
# ============================================================================


@pytest.mark.asyncio
async def test_delete_only_roadmap_clears_selection(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    result = await store.delete("r1")
    assert result.ok
    assert store.roadmaps == []
    assert store.active_id is None
    assert gateway.calls_to("delete") == ["r1"]


@pytest.mark.asyncio
async def test_delete_active_selects_remaining() -> None:
    gateway = RecordingGateway(
        {"roadmap": [make_record("r1", "One"), make_record("r2", "Two")]}
    )
    store = RoadmapStore(gateway)
    await store.load()
    store.select_active("r2")

    await store.delete("r2")
    assert store.active_id == "r1"


@pytest.mark.asyncio
async def test_delete_inactive_keeps_selection() -> None:
    gateway = RecordingGateway(
        {"roadmap": [make_record("r1", "One"), make_record("r2", "Two")]}
    )
    store = RoadmapStore(gateway)
    await store.load()
    store.select_active("r2")

    await store.delete("r1")
    assert store.active_id == "r2"


@pytest.mark.asyncio
async def test_delete_failure_is_not_restored(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    gateway.fail.add("delete")
    result = await store.delete("r1")
    assert not result.ok
    assert store.get("r1") is None


# ============================================================================
# toggle
# ============================================================================


@pytest.mark.asyncio
async def test_toggle_subtopic(store: RoadmapStore, gateway: RecordingGateway) -> None:
    previous = store.get("r1").data

    result = await store.toggle_subtopic_completion("r1", 0, 0)

    assert result.ok
    assert store.get("r1").data[0].subtopics[0].completed is True
    assert previous[0].subtopics[0].completed is False
    (call,) = gateway.calls_to("update")
    assert call[0] == "r1"
    assert call[1]["roadmap_data"][0]["Topic A"][0]["completed"] is True


@pytest.mark.asyncio
async def test_toggle_twice_restores() -> None:
    wire = [
        {
            "Topic A": [
                {"subtopic_name": "S1", "resource_url": "u", "completed": False},
                {"subtopic_name": "S2", "resource_url": "u", "completed": True},
            ]
        },
        {"Topic B": [{"subtopic_name": "S3", "resource_url": "u", "completed": False}]},
    ]
    store = RoadmapStore(RecordingGateway({"roadmap": [make_record("r1", "X", wire)]}))
    await store.load()
    original = store.get("r1").data

    await store.toggle_subtopic_completion("r1", 1, 0)
    await store.toggle_subtopic_completion("r1", 1, 0)
    assert store.get("r1").data == original


@pytest.mark.asyncio
async def test_toggle_builds_on_latest_snapshot(
    store: RoadmapStore, gateway: RecordingGateway
) -> None:
    await store.edit(
        "r1",
        _data({"Topic A": [
            {"subtopic_name": "S1", "resource_url": "u"},
            {"subtopic_name": "S2", "resource_url": "u"},
        ]}),
    )
    gateway.gates["update"] = asyncio.Event()
    first = asyncio.create_task(store.toggle_subtopic_completion("r1", 0, 0))
    await asyncio.sleep(0)
    second = asyncio.create_task(store.toggle_subtopic_completion("r1", 0, 1))
    await asyncio.sleep(0)
    gateway.gates["update"].set()
    await asyncio.gather(first, second)

    assert [s.completed for s in store.get("r1").data[0].subtopics] == [True, True]


@pytest.mark.asyncio
async def test_toggle_bad_index(store: RoadmapStore, gateway: RecordingGateway) -> None:
    with pytest.raises(IndexError):
        await store.toggle_subtopic_completion("r1", 0, 5)
    with pytest.raises(IndexError):
        await store.toggle_subtopic_completion("r1", 3, 0)
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_progress(store: RoadmapStore) -> None:
    assert store.progress("r1").total == 1
    await store.toggle_subtopic_completion("r1", 0, 0)
    assert store.progress("r1").percentage == 100
