"""DataService tests — CRUD, soft delete, slugs, broadcasts, error mapping.

Learn: The service is exercised against a real SQLAlchemyStore on the
in-memory SQLite database from conftest. Failure paths use a tiny fake
store that raises StoreError, plus a spy logger to see what was logged.
"""

import json

import pytest
from sqlalchemy.exc import OperationalError

from ignitor.errors import DatabaseError, NotFoundError
from ignitor.realtime import Broadcaster
from ignitor.services.base import DataService, ServiceOptions, slugify
from ignitor.services.store import RecordNotFoundError, StoreError, _driver_code


class SpyLogger:
    def __init__(self):
        self.calls = []

    def bind(self, **kw):
        return self

    def _record(self, level):
        def log(event, **kw):
            self.calls.append((level, event, kw))
        return log

    def __getattr__(self, level):
        return self._record(level)


class BrokenStore:
    """Every operation fails like a dropped connection."""

    def __init__(self, error: StoreError):
        self.error = error

    async def _fail(self, *args, **kwargs):
        raise self.error

    find_many = find_first = count = values = _fail
    create = update = delete = transaction = _fail


def _decode(frame: str) -> tuple[str, dict]:
    event_line, data_line, *_ = frame.split("\n")
    return event_line.removeprefix("event: "), json.loads(data_line.removeprefix("data: "))


# ═══════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_and_find(make_service):
    svc = make_service()
    post = await svc.create({"title": "Hello", "slug": "hello"})

    assert post.id is not None
    assert (await svc.find_by_id(post.id)).title == "Hello"
    assert await svc.exists({"slug": "hello"}) is True
    assert await svc.count() == 1


@pytest.mark.asyncio
async def test_find_by_id_missing_returns_none(make_service):
    svc = make_service()
    assert await svc.find_by_id(999) is None
    with pytest.raises(NotFoundError, match="Post not found"):
        await svc.get_by_id(999)


@pytest.mark.asyncio
async def test_find_many_paginates_newest_first(make_service):
    svc = make_service()
    for i in range(25):
        await svc.create({"title": f"Post {i}", "slug": f"post-{i}"})

    result = await svc.find_many(page=3, limit=10)

    assert result.total == 25
    assert result.total_pages == 3
    assert len(result.data) == 5
    assert result.has_next is False
    assert result.has_previous is True

    first_page = await svc.find_many()
    assert [p.title for p in first_page.data][:2] == ["Post 24", "Post 23"]


@pytest.mark.asyncio
async def test_find_many_clamps_limit(make_service):
    svc = make_service(max_page_size=5)
    for i in range(7):
        await svc.create({"title": f"P{i}", "slug": f"p-{i}"})

    result = await svc.find_many(page=-1, limit=5000)
    assert result.page == 1
    assert result.limit == 5
    assert len(result.data) == 5


@pytest.mark.asyncio
async def test_find_many_internal_and_filters(make_service):
    svc = make_service()
    await svc.create({"title": "Alpha news", "slug": "alpha"})
    await svc.create({"title": "Beta", "slug": "beta"})

    rows = await svc.find_many_internal({"title": {"icontains": "NEWS"}})
    assert [r.slug for r in rows] == ["alpha"]

    one = await svc.find_one({"slug": "beta"})
    assert one.title == "Beta"


@pytest.mark.asyncio
async def test_update(make_service):
    svc = make_service(enable_audit_fields=True)
    post = await svc.create({"title": "Old", "slug": "old"})

    updated = await svc.update_by_id(post.id, {"title": "New"})
    assert updated.title == "New"
    assert updated.updated_at is not None


@pytest.mark.asyncio
async def test_update_missing_raises_not_found(make_service):
    svc = make_service()
    with pytest.raises(NotFoundError):
        await svc.update_by_id(404, {"title": "x"})


@pytest.mark.asyncio
async def test_hard_delete(make_service):
    svc = make_service()
    post = await svc.create({"title": "Gone", "slug": "gone"})

    await svc.delete_by_id(post.id)

    assert await svc.find_by_id(post.id) is None
    assert await svc.count() == 0
    with pytest.raises(NotFoundError):
        await svc.delete_by_id(post.id)


# ═══════════════════════════════════════════════════════════
# Soft delete
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_soft_delete_hides_record(make_service):
    svc = make_service(enable_soft_delete=True)
    keep = await svc.create({"title": "Keep", "slug": "keep"})
    drop = await svc.create({"title": "Drop", "slug": "drop"})

    deleted = await svc.delete_by_id(drop.id)

    assert deleted.is_deleted is True
    assert deleted.deleted_at is not None
    assert await svc.find_by_id(drop.id) is None
    result = await svc.find_many()
    assert [p.id for p in result.data] == [keep.id]
    assert result.total == 1

    # The row is still there for a service without soft delete
    assert await make_service().find_by_id(drop.id) is not None


@pytest.mark.asyncio
async def test_build_where_adds_soft_delete_condition(make_service):
    svc = make_service(enable_soft_delete=True)
    assert svc.build_where({"title": "x"}) == {"title": "x", "deleted_at": None}
    assert make_service().build_where({"title": "x"}) == {"title": "x"}


# ═══════════════════════════════════════════════════════════
# Slugs
# ═══════════════════════════════════════════════════════════


def test_slugify():
    assert slugify("Hello, World!") == "hello-world"
    assert slugify("  Café  au lait ") == "cafe-au-lait"
    assert slugify("Salt & Pepper") == "salt-and-pepper"
    assert slugify("!!!") == ""
    assert len(slugify("word " * 50)) <= 100


@pytest.mark.asyncio
async def test_unique_slug_appends_counter(make_service):
    svc = make_service()
    await svc.create({"title": "Post", "slug": "post"})
    await svc.create({"title": "Post", "slug": "post-1"})

    assert await svc.generate_unique_slug("Post") == "post-2"
    assert await svc.generate_unique_slug("Other") == "other"


@pytest.mark.asyncio
async def test_unique_slug_excludes_own_record(make_service):
    svc = make_service()
    post = await svc.create({"title": "Post", "slug": "post"})

    assert await svc.generate_unique_slug("Post", exclude_id=post.id) == "post"


@pytest.mark.asyncio
async def test_unique_slug_counts_soft_deleted_rows(make_service):
    svc = make_service(enable_soft_delete=True)
    post = await svc.create({"title": "Post", "slug": "post"})
    await svc.delete_by_id(post.id)

    assert await svc.generate_unique_slug("Post") == "post-1"


@pytest.mark.asyncio
async def test_unique_slug_empty_title_uses_model_name(make_service):
    svc = make_service()
    assert await svc.generate_unique_slug("???") == "post"


# ═══════════════════════════════════════════════════════════
# Broadcasts
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_broadcasts_to_channels_and_wildcard(make_service, broadcaster, handle_factory):
    svc = make_service(enable_sse=True)
    posts, wildcard = handle_factory(), handle_factory()
    svc.add_client("posts", posts)
    svc.add_client("*", wildcard)

    post = await svc.create({"title": "Hi", "slug": "hi"}, broadcast_channels=["posts"])

    for handle in (posts, wildcard):
        assert len(handle.frames) == 1
        event_type, payload = _decode(handle.frames[0])
        assert event_type == "created"
        assert payload["id"] == post.id
        assert payload["model"] == "Post"
        assert payload["data"]["slug"] == "hi"


@pytest.mark.asyncio
async def test_create_without_channels_still_reaches_wildcard(make_service, handle_factory):
    svc = make_service(enable_sse=True)
    wildcard = handle_factory()
    svc.add_client("*", wildcard)

    await svc.create({"title": "Hi", "slug": "hi"})
    assert len(wildcard.frames) == 1


@pytest.mark.asyncio
async def test_update_and_delete_skip_wildcard(make_service, handle_factory):
    svc = make_service(enable_sse=True, enable_soft_delete=True)
    post = await svc.create({"title": "Hi", "slug": "hi"})
    wildcard, room = handle_factory(), handle_factory()
    svc.add_client("*", wildcard)
    svc.add_client("post:1", room)

    await svc.update_by_id(post.id, {"body": "x"}, broadcast_channels=["post:1"])
    await svc.update_by_id(post.id, {"body": "y"})
    await svc.delete_by_id(post.id, broadcast_channels=["post:1"])

    assert wildcard.frames == []
    assert [_decode(f)[0] for f in room.frames] == ["updated", "deleted"]
    assert _decode(room.frames[1])[1]["id"] == post.id


@pytest.mark.asyncio
async def test_sse_disabled_sends_nothing(make_service, broadcaster, handle_factory):
    svc = make_service()
    handle = handle_factory()
    broadcaster.subscribe("*", handle)
    svc.add_client("posts", handle_factory())

    await svc.create({"title": "Quiet", "slug": "quiet"}, broadcast_channels=["posts"])

    assert handle.frames == []
    assert broadcaster.channel_count("posts") == 0


@pytest.mark.asyncio
async def test_broadcast_failure_does_not_fail_mutation(make_service, handle_factory):
    svc = make_service(enable_sse=True)
    svc.add_client("*", handle_factory(fail=True))

    post = await svc.create({"title": "Still saved", "slug": "saved"})
    assert await svc.find_by_id(post.id) is not None
    assert svc.channel_client_count("*") == 0


@pytest.mark.asyncio
async def test_client_helpers(make_service, handle_factory):
    svc = make_service(enable_sse=True)
    h = handle_factory()
    svc.add_client("a", h)
    svc.add_client("b", h)
    assert svc.active_channels() == ["a", "b"]
    assert svc.total_client_count() == 2

    svc.remove_client("a", h)
    assert svc.channel_client_count("a") == 0


def test_sse_without_broadcaster_rejected():
    with pytest.raises(ValueError):
        DataService(BrokenStore(StoreError("x")), "Post", ServiceOptions(enable_sse=True))


# ═══════════════════════════════════════════════════════════
# Error mapping
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_store_error_becomes_database_error():
    logger = SpyLogger()
    svc = DataService(
        BrokenStore(StoreError("connection refused", "08006")),
        "Post",
        logger=logger,
        expose_error_details=True,
    )

    with pytest.raises(DatabaseError) as exc_info:
        await svc.find_many()

    err = exc_info.value
    assert err.status_code == 500
    assert err.message == "Failed to retrieve post list"
    assert err.details == {"original_error": "connection refused", "code": "08006"}
    level, event, fields = logger.calls[-1]
    assert (level, event) == ("error", "db.operation_failed")
    assert fields["operation"] == "Post.find_many"


@pytest.mark.asyncio
async def test_error_details_hidden_by_default():
    svc = DataService(BrokenStore(StoreError("boom")), "Post", logger=SpyLogger())
    with pytest.raises(DatabaseError) as exc_info:
        await svc.create({"title": "x"})
    assert exc_info.value.message == "Failed to create post"
    assert exc_info.value.details is None


@pytest.mark.asyncio
async def test_record_not_found_becomes_not_found():
    svc = DataService(BrokenStore(RecordNotFoundError()), "Post", logger=SpyLogger())
    with pytest.raises(NotFoundError, match="Post not found"):
        await svc.update_by_id(1, {"title": "x"})


# ═══════════════════════════════════════════════════════════
# Transactions
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_transaction_commits(make_service):
    svc = make_service()

    async def two_posts(store):
        await store.create({"title": "A", "slug": "a"})
        await store.create({"title": "B", "slug": "b"})
        return "done"

    assert await svc.transaction(two_posts) == "done"
    assert await svc.count() == 2


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(make_service):
    svc = make_service()

    async def half_done(store):
        await store.create({"title": "A", "slug": "a"})
        raise RuntimeError("changed my mind")

    with pytest.raises(RuntimeError):
        await svc.transaction(half_done)
    assert await svc.count() == 0


@pytest.mark.asyncio
async def test_transaction_store_error_maps_to_database_error(make_service):
    svc = make_service()

    async def duplicate(store):
        await store.create({"title": "A", "slug": "same"})
        await store.create({"title": "B", "slug": "same"})

    with pytest.raises(DatabaseError):
        await svc.transaction(duplicate)
    assert await svc.count() == 0


# ═══════════════════════════════════════════════════════════
# Failures after commit
# ═══════════════════════════════════════════════════════════


class Unserializable:
    """A committed record whose attributes can no longer be loaded."""

    id = 7

    def to_dict(self):
        raise RuntimeError("instance is detached")


class CommittingStore:
    async def create(self, data):
        return Unserializable()

    async def update(self, record_id, data):
        return Unserializable()

    async def delete(self, record_id):
        return Unserializable()


@pytest.mark.asyncio
async def test_unbuildable_event_payload_does_not_fail_mutation(handle_factory):
    broadcaster = Broadcaster()
    logger = SpyLogger()
    svc = DataService(
        CommittingStore(),
        "Post",
        ServiceOptions(enable_sse=True),
        broadcaster=broadcaster,
        logger=logger,
    )
    handle = handle_factory()
    broadcaster.subscribe("*", handle)
    broadcaster.subscribe("posts", handle)

    assert (await svc.create({"title": "x"}, broadcast_channels=["posts"])).id == 7
    assert (await svc.update_by_id(7, {"title": "y"}, broadcast_channels=["posts"])).id == 7
    assert (await svc.delete_by_id(7, broadcast_channels=["posts"])).id == 7

    assert handle.frames == []
    failures = [call for call in logger.calls if call[1] == "sse.emit_failed"]
    assert [call[2]["event_type"] for call in failures] == [
        "created", "created", "updated", "deleted",
    ]


# ═══════════════════════════════════════════════════════════
# Driver error codes
# ═══════════════════════════════════════════════════════════


def test_driver_code_prefers_sqlstate():
    class PgError(Exception):
        sqlstate = "23505"

    exc = OperationalError("INSERT ...", {}, PgError("duplicate key"))
    assert _driver_code(exc) == "23505"


def test_driver_code_none_without_driver_code():
    exc = OperationalError("SELECT 1", {}, Exception("no such table: posts"))
    assert _driver_code(exc) is None
