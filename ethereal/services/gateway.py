"""Persistence gateway: CRUD against named collections of the data store.

Every call returns a :class:`GatewayResult`; transport and store failures are
reported as a :class:`GatewayError` value instead of being raised, so callers
can roll back or surface them as they see fit.
"""

import copy
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

import aiohttp
from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ethereal.core.config import Settings
from ethereal.core.database import Base, get_db_session
from ethereal.core.logging import get_logger
from ethereal.models.roadmap import RoadmapRecord

logger = get_logger(__name__)

KEY_FIELD = "uid"
RETURN_REPRESENTATION = {"Prefer": "return=representation"}

Record = dict[str, Any]
# (field, ascending)
Order = tuple[str, bool]


class GatewayError(Exception):
    """A failed call against the data store."""

    def __init__(self, operation: str, collection: str, message: str) -> None:
        super().__init__(message)
        self.operation = operation
        self.collection = collection
        self.message = message

    def __str__(self) -> str:
        return f"{self.operation} {self.collection}: {self.message}"


@dataclass(frozen=True)
class GatewayResult:
    data: Any = None
    error: GatewayError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class PersistenceGateway(Protocol):
    async def create(self, collection: str, record: Record) -> GatewayResult: ...

    async def read(
        self,
        collection: str,
        filter: Record | None = None,
        order: Order | None = None,
    ) -> GatewayResult: ...

    async def update(self, collection: str, id: str, patch: Record) -> GatewayResult: ...

    async def delete(self, collection: str, id: str) -> GatewayResult: ...


# ============================================================================
# In-memory
# ============================================================================


class InMemoryGateway:
    """Dict-backed gateway for development and tests."""

    def __init__(self, collections: dict[str, list[Record]] | None = None) -> None:
        self._collections: dict[str, list[Record]] = {
            name: [copy.deepcopy(r) for r in rows] for name, rows in (collections or {}).items()
        }

    def rows(self, collection: str) -> list[Record]:
        return [copy.deepcopy(r) for r in self._collections.get(collection, [])]

    def _find(self, collection: str, id: str) -> Record | None:
        for row in self._collections.get(collection, []):
            if row.get(KEY_FIELD) == id:
                return row
        return None

    async def create(self, collection: str, record: Record) -> GatewayResult:
        row = copy.deepcopy(record)
        row.setdefault(KEY_FIELD, uuid.uuid4().hex)
        row.setdefault("created_at", datetime.now(UTC).isoformat())
        if self._find(collection, row[KEY_FIELD]) is not None:
            return GatewayResult(
                error=GatewayError("create", collection, f"duplicate {KEY_FIELD} {row[KEY_FIELD]}")
            )
        self._collections.setdefault(collection, []).append(row)
        return GatewayResult(data=copy.deepcopy(row))

    async def read(
        self,
        collection: str,
        filter: Record | None = None,
        order: Order | None = None,
    ) -> GatewayResult:
        rows = [
            copy.deepcopy(r)
            for r in self._collections.get(collection, [])
            if all(r.get(k) == v for k, v in (filter or {}).items())
        ]
        if order:
            field, ascending = order
            rows.sort(key=lambda r: r.get(field) or "", reverse=not ascending)
        return GatewayResult(data=rows)

    async def update(self, collection: str, id: str, patch: Record) -> GatewayResult:
        row = self._find(collection, id)
        if row is None:
            return GatewayResult(error=GatewayError("update", collection, f"{id} not found"))
        row.update(copy.deepcopy(patch))
        return GatewayResult(data=copy.deepcopy(row))

    async def delete(self, collection: str, id: str) -> GatewayResult:
        row = self._find(collection, id)
        if row is None:
            return GatewayResult(error=GatewayError("delete", collection, f"{id} not found"))
        self._collections[collection].remove(row)
        return GatewayResult()


# ============================================================================
# SQLAlchemy
# ============================================================================


def _to_record(row: Base) -> Record:
    record: Record = {}
    for attr in inspect(row).mapper.column_attrs:
        value = getattr(row, attr.key)
        record[attr.key] = value.isoformat() if isinstance(value, datetime) else value
    return record


class SqlGateway:
    """Gateway over the local database, one ORM model per collection."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        models: dict[str, type[Base]] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._models = models or {"roadmap": RoadmapRecord}

    def _model(self, operation: str, collection: str) -> type[Base]:
        model = self._models.get(collection)
        if model is None:
            raise GatewayError(operation, collection, "unknown collection")
        return model

    async def create(self, collection: str, record: Record) -> GatewayResult:
        try:
            model = self._model("create", collection)
            async with get_db_session(self._session_factory) as db:
                row = model(**record)
                db.add(row)
                await db.flush()
                await db.refresh(row)
                inserted = _to_record(row)
        except GatewayError as e:
            return GatewayResult(error=e)
        except SQLAlchemyError as e:
            logger.warning("Create failed", collection=collection, error=str(e))
            return GatewayResult(error=GatewayError("create", collection, str(e)))
        return GatewayResult(data=inserted)

    async def read(
        self,
        collection: str,
        filter: Record | None = None,
        order: Order | None = None,
    ) -> GatewayResult:
        try:
            model = self._model("read", collection)
            stmt = select(model)
            for field, value in (filter or {}).items():
                stmt = stmt.where(getattr(model, field) == value)
            if order:
                field, ascending = order
                column = getattr(model, field)
                stmt = stmt.order_by(column.asc() if ascending else column.desc())
            async with get_db_session(self._session_factory) as db:
                result = await db.execute(stmt)
                rows = [_to_record(r) for r in result.scalars().all()]
        except GatewayError as e:
            return GatewayResult(error=e)
        except (SQLAlchemyError, AttributeError) as e:
            logger.warning("Read failed", collection=collection, error=str(e))
            return GatewayResult(error=GatewayError("read", collection, str(e)))
        return GatewayResult(data=rows)

    async def update(self, collection: str, id: str, patch: Record) -> GatewayResult:
        try:
            model = self._model("update", collection)
            async with get_db_session(self._session_factory) as db:
                row = await db.get(model, id)
                if row is None:
                    raise GatewayError("update", collection, f"{id} not found")
                for field, value in patch.items():
                    setattr(row, field, value)
                await db.flush()
                updated = _to_record(row)
        except GatewayError as e:
            return GatewayResult(error=e)
        except SQLAlchemyError as e:
            logger.warning("Update failed", collection=collection, id=id, error=str(e))
            return GatewayResult(error=GatewayError("update", collection, str(e)))
        return GatewayResult(data=updated)

    async def delete(self, collection: str, id: str) -> GatewayResult:
        try:
            model = self._model("delete", collection)
            async with get_db_session(self._session_factory) as db:
                row = await db.get(model, id)
                if row is None:
                    raise GatewayError("delete", collection, f"{id} not found")
                await db.delete(row)
        except GatewayError as e:
            return GatewayResult(error=e)
        except SQLAlchemyError as e:
            logger.warning("Delete failed", collection=collection, id=id, error=str(e))
            return GatewayResult(error=GatewayError("delete", collection, str(e)))
        return GatewayResult()


# ============================================================================
# Hosted table API
# ============================================================================


def build_query(
    filter: Record | None = None,
    order: Order | None = None,
) -> dict[str, str]:
    """Build PostgREST-style query parameters.

    >>> build_query({"uid": "abc"}, ("created_at", False))
    {'uid': 'eq.abc', 'order': 'created_at.desc'}
    """
    params = {field: f"eq.{value}" for field, value in (filter or {}).items()}
    if order:
        field, ascending = order
        params["order"] = f"{field}.{'asc' if ascending else 'desc'}"
    return params


class RestGateway:
    """Gateway over a hosted PostgREST-compatible table API.

    Writes ask for the affected rows back, so an update or delete that
    matches no row is reported as an error like the other backends do.
    """

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }

    def _url(self, collection: str) -> str:
        return f"{self._base_url}/rest/v1/{collection}"

    async def _request(
        self,
        operation: str,
        collection: str,
        method: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> GatewayResult:
        try:
            async with aiohttp.ClientSession(
                headers=self._headers, timeout=self._timeout
            ) as session:
                async with session.request(
                    method,
                    self._url(collection),
                    params=params,
                    json=json,
                    headers=headers,
                ) as resp:
                    if resp.status >= 400:
                        message = await resp.text()
                        logger.warning(
                            "Request rejected",
                            operation=operation,
                            collection=collection,
                            status=resp.status,
                        )
                        return GatewayResult(
                            error=GatewayError(operation, collection, f"HTTP {resp.status}: {message}")
                        )
                    if resp.status == 204 or resp.content_length == 0:
                        return GatewayResult(data=[])
                    return GatewayResult(data=await resp.json())
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning("Request failed", operation=operation, collection=collection, error=str(e))
            return GatewayResult(error=GatewayError(operation, collection, str(e) or type(e).__name__))

    async def _write(
        self,
        operation: str,
        collection: str,
        method: str,
        missing: str,
        **kwargs: Any,
    ) -> GatewayResult:
        """Send a write and return the first affected row."""
        result = await self._request(
            operation, collection, method, headers=RETURN_REPRESENTATION, **kwargs
        )
        if not result.ok:
            return result
        if not result.data:
            return GatewayResult(error=GatewayError(operation, collection, missing))
        return GatewayResult(data=result.data[0])

    async def create(self, collection: str, record: Record) -> GatewayResult:
        return await self._write("create", collection, "POST", "no row returned", json=[record])

    async def read(
        self,
        collection: str,
        filter: Record | None = None,
        order: Order | None = None,
    ) -> GatewayResult:
        return await self._request(
            "read", collection, "GET", params={"select": "*", **build_query(filter, order)}
        )

    async def update(self, collection: str, id: str, patch: Record) -> GatewayResult:
        return await self._write(
            "update",
            collection,
            "PATCH",
            f"{id} not found",
            params=build_query({KEY_FIELD: id}),
            json=patch,
        )

    async def delete(self, collection: str, id: str) -> GatewayResult:
        result = await self._write(
            "delete", collection, "DELETE", f"{id} not found", params=build_query({KEY_FIELD: id})
        )
        return result if not result.ok else GatewayResult()


def create_gateway(settings: Settings) -> PersistenceGateway:
    """Build the gateway selected by ``GATEWAY_BACKEND``."""
    if settings.GATEWAY_BACKEND == "memory":
        return InMemoryGateway()
    if settings.GATEWAY_BACKEND == "rest":
        if not settings.REST_URL or not settings.REST_API_KEY:
            raise ValueError("REST_URL and REST_API_KEY are required for the rest backend")
        return RestGateway(settings.REST_URL, settings.REST_API_KEY, timeout=settings.REST_TIMEOUT)
    return SqlGateway(models={settings.ROADMAP_COLLECTION: RoadmapRecord})
