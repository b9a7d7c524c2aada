"""Post API routes, including the live SSE feed.

Learn: Routes translate HTTP into service calls. Every mutation is
broadcast to the "posts" channel; updates and deletes also go to the
per-record channel "post:<id>", and clients may name extra channels in the
request body. Creates additionally reach every "*" subscriber.

Live feed:  GET /api/v1/posts/stream?channel=posts&channel=post:42
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ignitor.context import AppContext, get_context
from ignitor.db.engine import get_db
from ignitor.modules.posts.models import Post
from ignitor.modules.posts.schemas import PostCreate, PostRead, PostUpdate
from ignitor.modules.posts.service import PostService
from ignitor.realtime import WILDCARD_CHANNEL, QueueStream, event_stream, sse_response
from ignitor.services.base import ServiceOptions
from ignitor.services.pagination import Page
from ignitor.services.store import SQLAlchemyStore

router = APIRouter()

POSTS_CHANNEL = "posts"


def post_channel(post_id: int) -> str:
    return f"post:{post_id}"


def _svc(
    db: AsyncSession = Depends(get_db),
    ctx: AppContext = Depends(get_context),
) -> PostService:
    return PostService(
        SQLAlchemyStore(db, Post),
        "Post",
        ServiceOptions(
            enable_soft_delete=True,
            enable_audit_fields=True,
            enable_sse=True,
            default_page_size=ctx.settings.default_page_size,
            max_page_size=ctx.settings.max_page_size,
        ),
        broadcaster=ctx.broadcaster,
        logger=ctx.logger.bind(service="Post"),
        expose_error_details=not ctx.settings.is_production,
    )


def _parse_order(order_by: Optional[str]) -> Optional[dict[str, str]]:
    if not order_by:
        return None
    field, _, direction = order_by.partition(":")
    return {field: direction or "asc"}


# ─── Live feed ──────────────────────────────────────────


@router.get("/posts/stream")
async def stream_posts(
    request: Request,
    channel: list[str] = Query([]),
    ctx: AppContext = Depends(get_context),
):
    """Subscribe to post events over Server-Sent Events.

    No channel → the "*" channel (every created post).
    """
    channels = channel or [WILDCARD_CHANNEL]
    handle = QueueStream(maxsize=ctx.settings.sse_queue_size)
    for name in channels:
        ctx.broadcaster.subscribe(name, handle)

    async def unsubscribe() -> None:
        for name in channels:
            ctx.broadcaster.unsubscribe(name, handle)

    return sse_response(
        event_stream(
            request,
            handle,
            heartbeat=ctx.settings.sse_heartbeat_seconds,
            on_close=unsubscribe,
        )
    )


# ─── CRUD ───────────────────────────────────────────────


@router.get("/posts", response_model=Page[PostRead])
async def list_posts(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    q: Optional[str] = None,
    created_after: Optional[datetime] = None,
    created_before: Optional[datetime] = None,
    min_id: Optional[int] = None,
    max_id: Optional[int] = None,
    order_by: Optional[str] = Query(
        None, pattern=r"^(id|title|slug|created_at|updated_at)(:(asc|desc))?$"
    ),
    svc: PostService = Depends(_svc),
):
    """Paginated posts. Out-of-range page/limit values are clamped, not rejected."""
    filters = svc.apply_filters({
        "q": q,
        "created_after": created_after,
        "created_before": created_before,
        "min_id": min_id,
        "max_id": max_id,
    })
    result = await svc.find_many(
        filters, page=page, limit=limit, order_by=_parse_order(order_by)
    )
    return Page[PostRead].model_validate(result)


@router.get("/posts/{post_id}", response_model=PostRead)
async def get_post(post_id: int, svc: PostService = Depends(_svc)):
    return await svc.get_by_id(post_id)


@router.post("/posts", response_model=PostRead, status_code=201)
async def create_post(body: PostCreate, svc: PostService = Depends(_svc)):
    return await svc.create_post(
        body.title, body.body, channels=[POSTS_CHANNEL, *body.channels]
    )


@router.patch("/posts/{post_id}", response_model=PostRead)
async def update_post(post_id: int, body: PostUpdate, svc: PostService = Depends(_svc)):
    changes = body.model_dump(exclude_unset=True, exclude={"channels"})
    return await svc.update_post(
        post_id,
        changes,
        channels=[POSTS_CHANNEL, post_channel(post_id), *body.channels],
    )


@router.delete("/posts/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    channels: list[str] = Query([], alias="channel"),
    svc: PostService = Depends(_svc),
):
    await svc.delete_post(
        post_id, channels=[POSTS_CHANNEL, post_channel(post_id), *channels]
    )
    return Response(status_code=204)
