"""Generic data service — CRUD skeleton shared by every resource.

Learn: A resource service is a DataService configured with a store, a model
name and ServiceOptions. It gets, for free:

- paginated reads with declarative filters (filter_map)
- soft delete (deleted rows are invisible to every read)
- audit timestamps stamped on create/update
- slug generation
- Server-Sent-Events broadcasts after successful mutations
- one error policy: store failures are logged with context and re-raised
  as NotFoundError / DatabaseError — callers never see driver errors

Broadcast rules:
    create  → `created` to the requested channels AND always to "*"
    update  → `updated` to the requested channels only
    delete  → `deleted` to the requested channels only

A broadcast that fails only costs the subscriber involved; the mutation
has already been committed and the call still succeeds.

No caching: every read goes to the store.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, ClassVar, Iterable, Mapping, Optional, TypeVar

import structlog
from slugify import slugify as _slugify

from ignitor.errors import DatabaseError, NotFoundError
from ignitor.realtime.broadcaster import Broadcaster
from ignitor.realtime.events import WILDCARD_CHANNEL
from ignitor.services.filters import FilterHandler, apply_filters, merge_filters
from ignitor.services.pagination import PaginationResult, normalize_pagination
from ignitor.services.store import OrderBy, RecordNotFoundError, RecordStore, StoreError

R = TypeVar("R")

DEFAULT_ORDER: dict[str, str] = {"id": "desc"}

_OPERATION_MESSAGES = {
    "find_many": "Failed to retrieve {name} list",
    "find_many_internal": "Failed to retrieve {name} list",
    "find_by_id": "Failed to retrieve {name}",
    "find_one": "Failed to retrieve {name}",
    "create": "Failed to create {name}",
    "update_by_id": "Failed to update {name}",
    "delete_by_id": "Failed to delete {name}",
    "soft_delete": "Failed to delete {name}",
    "exists": "Failed to check {name}",
    "count": "Failed to count {name}",
    "generate_unique_slug": "Failed to generate {name} slug",
    "transaction": "Database transaction failed",
}


@dataclass(frozen=True)
class ServiceOptions:
    enable_soft_delete: bool = False
    enable_audit_fields: bool = False
    enable_sse: bool = False
    default_page_size: int = 10
    max_page_size: int = 1000


# "&" reads as a word in titles: "Salt & Pepper" -> "salt-and-pepper"
SLUG_REPLACEMENTS = [["&", " and "]]


def slugify(text: str, max_length: int = 100) -> str:
    """Lowercase ASCII words joined by single hyphens: "Héllo, World!" → "hello-world"."""
    return _slugify(text, max_length=max_length, replacements=SLUG_REPLACEMENTS)


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DataService:
    """CRUD over one record store, with pagination, soft delete and SSE."""

    # Query parameter → where-fragment. Subclasses fill this in.
    filter_map: ClassVar[dict[str, FilterHandler]] = {}

    def __init__(
        self,
        store: RecordStore,
        model_name: str,
        options: Optional[ServiceOptions] = None,
        *,
        broadcaster: Optional[Broadcaster] = None,
        logger=None,
        expose_error_details: bool = False,
    ):
        self.store = store
        self.model_name = model_name
        self.options = options or ServiceOptions()
        self.broadcaster = broadcaster
        self.logger = logger or structlog.get_logger("ignitor.services").bind(
            service=model_name
        )
        self.expose_error_details = expose_error_details

        if self.options.enable_sse and broadcaster is None:
            raise ValueError(f"{model_name} service has SSE enabled but no broadcaster")

    # ─── Reads ──────────────────────────────────────────

    async def find_many(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
    ) -> PaginationResult:
        """One page of matching records plus totals. Newest id first by default."""
        where = self.build_where(filters or {})
        window = normalize_pagination(
            page,
            limit,
            default_page_size=self.options.default_page_size,
            max_page_size=self.options.max_page_size,
        )
        try:
            data = await self.store.find_many(
                where,
                order_by=order_by or DEFAULT_ORDER,
                offset=window.offset,
                limit=window.limit,
            )
            total = await self.store.count(where)
        except StoreError as e:
            self._raise_store_error(e, "find_many")
        return PaginationResult.build(data, total, window)

    async def find_many_internal(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[Any]:
        """Unpaginated read for internal use, capped at max_page_size rows."""
        try:
            return await self.store.find_many(
                self.build_where(filters or {}),
                order_by=order_by or DEFAULT_ORDER,
                limit=limit or self.options.max_page_size,
            )
        except StoreError as e:
            self._raise_store_error(e, "find_many_internal")

    async def find_by_id(self, record_id: Any) -> Optional[Any]:
        """The record, or None if it doesn't exist (or is soft-deleted)."""
        try:
            return await self.store.find_first(self.build_where({"id": record_id}))
        except StoreError as e:
            self._raise_store_error(e, "find_by_id")

    async def find_one(self, filters: Mapping[str, Any]) -> Optional[Any]:
        try:
            return await self.store.find_first(self.build_where(filters))
        except StoreError as e:
            self._raise_store_error(e, "find_one")

    async def get_by_id(self, record_id: Any) -> Any:
        """Like find_by_id, but absence raises NotFoundError."""
        record = await self.find_by_id(record_id)
        if record is None:
            raise NotFoundError(f"{self.model_name} not found")
        return record

    async def exists(self, filters: Mapping[str, Any]) -> bool:
        try:
            return await self.store.count(self.build_where(filters)) > 0
        except StoreError as e:
            self._raise_store_error(e, "exists")

    async def count(self, filters: Optional[Mapping[str, Any]] = None) -> int:
        try:
            return await self.store.count(self.build_where(filters or {}))
        except StoreError as e:
            self._raise_store_error(e, "count")

    # ─── Writes ─────────────────────────────────────────

    async def create(
        self,
        data: Mapping[str, Any],
        broadcast_channels: Optional[Iterable[str]] = None,
    ) -> Any:
        try:
            record = await self.store.create(self.prepare_create_data(data))
        except StoreError as e:
            self._raise_store_error(e, "create")

        if self.options.enable_sse:
            if broadcast_channels:
                await self._emit(broadcast_channels, "created", record)
            await self._emit([WILDCARD_CHANNEL], "created", record)
        return record

    async def update_by_id(
        self,
        record_id: Any,
        data: Mapping[str, Any],
        broadcast_channels: Optional[Iterable[str]] = None,
    ) -> Any:
        try:
            record = await self.store.update(record_id, self.prepare_update_data(data))
        except StoreError as e:
            self._raise_store_error(e, "update_by_id")

        if self.options.enable_sse and broadcast_channels:
            await self._emit(broadcast_channels, "updated", record)
        return record

    async def delete_by_id(
        self,
        record_id: Any,
        broadcast_channels: Optional[Iterable[str]] = None,
    ) -> Any:
        """Soft delete when enabled, hard delete otherwise."""
        if self.options.enable_soft_delete:
            record = await self.soft_delete(record_id)
        else:
            try:
                record = await self.store.delete(record_id)
            except StoreError as e:
                self._raise_store_error(e, "delete_by_id")

        if self.options.enable_sse and broadcast_channels:
            await self._emit(broadcast_channels, "deleted", record, record_id)
        return record

    async def soft_delete(self, record_id: Any) -> Any:
        try:
            return await self.store.update(
                record_id, {"deleted_at": _utcnow(), "is_deleted": True}
            )
        except StoreError as e:
            self._raise_store_error(e, "soft_delete")

    async def transaction(self, fn: Callable[[RecordStore], Awaitable[R]]) -> R:
        """Run `fn(store)` atomically; store failures map like any other op."""
        try:
            return await self.store.transaction(fn)
        except StoreError as e:
            self._raise_store_error(e, "transaction")

    # ─── Filters ────────────────────────────────────────

    def build_where(self, filters: Mapping[str, Any]) -> dict[str, Any]:
        """Caller filters plus soft-delete exclusion when enabled."""
        if self.options.enable_soft_delete:
            return merge_filters(filters, {"deleted_at": None})
        return dict(filters)

    def apply_filters(self, query: Mapping[str, Any]) -> dict[str, Any]:
        """Turn query parameters into a where-dict using filter_map."""
        return apply_filters(query, self.filter_map)

    # ─── Slugs ──────────────────────────────────────────

    async def generate_unique_slug(self, title: str, exclude_id: Any = None) -> str:
        """Slug for `title` not used by any other row: "post", "post-1", "post-2"...

        Best-effort pre-check only — two concurrent calls can pick the same
        slug. The unique constraint on the column has the final say.
        Soft-deleted rows still count, since they still hold their slug.
        """
        base = slugify(title) or self.model_name.lower()
        where: dict[str, Any] = {"slug": {"startswith": base}}
        if exclude_id is not None:
            where["id"] = {"not": exclude_id}
        try:
            existing = set(await self.store.values("slug", where))
        except StoreError as e:
            self._raise_store_error(e, "generate_unique_slug")

        slug = base
        counter = 1
        while slug in existing:
            slug = f"{base}-{counter}"
            counter += 1
        return slug

    # ─── SSE clients ────────────────────────────────────

    def add_client(self, channel: str, handle) -> None:
        if not self.options.enable_sse or self.broadcaster is None:
            self.logger.warning("sse.disabled", channel=channel)
            return
        self.broadcaster.subscribe(channel, handle)

    def remove_client(self, channel: str, handle) -> None:
        if not self.options.enable_sse or self.broadcaster is None:
            return
        self.broadcaster.unsubscribe(channel, handle)

    def channel_client_count(self, channel: str) -> int:
        return self.broadcaster.channel_count(channel) if self.broadcaster else 0

    def active_channels(self) -> list[str]:
        return self.broadcaster.active_channels() if self.broadcaster else []

    def total_client_count(self) -> int:
        return self.broadcaster.total_clients() if self.broadcaster else 0

    # ─── Internals ──────────────────────────────────────

    def prepare_create_data(self, data: Mapping[str, Any]) -> dict[str, Any]:
        prepared = dict(data)
        if self.options.enable_audit_fields:
            now = _utcnow()
            prepared["created_at"] = now
            prepared["updated_at"] = now
        return prepared

    def prepare_update_data(self, data: Mapping[str, Any]) -> dict[str, Any]:
        prepared = dict(data)
        if self.options.enable_audit_fields:
            prepared["updated_at"] = _utcnow()
        return prepared

    def event_payload(self, record: Any, record_id: Any = None) -> dict[str, Any]:
        data = record.to_dict() if hasattr(record, "to_dict") else record
        return {
            "id": _field(record, "id") if record_id is None else record_id,
            "model": self.model_name,
            "data": data,
        }

    async def _emit(
        self,
        channels: Iterable[str],
        event_type: str,
        record: Any,
        record_id: Any = None,
    ) -> None:
        """Broadcast after a committed mutation. Nothing here may raise."""
        try:
            payload = self.event_payload(record, record_id)
            await self.broadcaster.broadcast_many(list(channels), event_type, payload)
        except Exception:
            self.logger.exception("sse.emit_failed", event_type=event_type)

    def _raise_store_error(self, error: StoreError, operation: str):
        self.logger.error(
            "db.operation_failed",
            operation=f"{self.model_name}.{operation}",
            error=error.message,
            code=error.code,
        )
        if isinstance(error, RecordNotFoundError):
            raise NotFoundError(f"{self.model_name} not found") from error

        template = _OPERATION_MESSAGES.get(operation, "Database operation failed")
        details = (
            {"original_error": error.message, "code": error.code}
            if self.expose_error_details
            else None
        )
        raise DatabaseError(
            template.format(name=self.model_name.lower()), details=details
        ) from error
