"""Shared fixtures."""

import asyncio
from collections.abc import AsyncGenerator, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ethereal.core.database import Base
from ethereal.services.gateway import GatewayError, GatewayResult, InMemoryGateway, Record
from ethereal.services.roadmap_store import RoadmapStore


def make_record(uid: str, title: str, data: list | None = None) -> dict:
    return {"uid": uid, "subject_name": title, "roadmap_data": data or []}


TOPIC_A = {
    "Topic A": [
        {"subtopic_name": "S1", "resource_url": "http://x", "completed": False},
    ]
}


class RecordingGateway(InMemoryGateway):
    """In-memory gateway that logs calls and can fail or hold them."""

    def __init__(self, collections: dict[str, list[Record]] | None = None) -> None:
        super().__init__(collections)
        self.calls: list[tuple[str, str, object]] = []
        self.fail: set[str] = set()
        self.gates: dict[str, asyncio.Event] = {}
        # Fails single calls: (operation, payload) -> bool
        self.reject: Callable[[str, object], bool] | None = None

    async def _enter(self, operation: str, collection: str, payload: object) -> GatewayResult | None:
        self.calls.append((operation, collection, payload))
        gate = self.gates.get(operation)
        if gate is not None:
            await gate.wait()
        if operation in self.fail or (self.reject is not None and self.reject(operation, payload)):
            return GatewayResult(error=GatewayError(operation, collection, "connection refused"))
        return None

    async def create(self, collection: str, record: Record) -> GatewayResult:
        return await self._enter("create", collection, record) or await super().create(collection, record)

    async def read(self, collection, filter=None, order=None) -> GatewayResult:
        return await self._enter("read", collection, filter) or await super().read(collection, filter, order)

    async def update(self, collection: str, id: str, patch: Record) -> GatewayResult:
        return await self._enter("update", collection, (id, patch)) or await super().update(
            collection, id, patch
        )

    async def delete(self, collection: str, id: str) -> GatewayResult:
        return await self._enter("delete", collection, id) or await super().delete(collection, id)

    def calls_to(self, operation: str) -> list:
        return [payload for op, _, payload in self.calls if op == operation]


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway(
        {"roadmap": [make_record("r1", "X", [TOPIC_A])]},
    )


@pytest_asyncio.fixture
async def store(gateway: RecordingGateway) -> RoadmapStore:
    """Store loaded with roadmap r1."""
    s = RoadmapStore(gateway)
    await s.load()
    gateway.calls.clear()
    return s


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a throwaway sqlite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
