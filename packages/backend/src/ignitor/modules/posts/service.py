"""Post service — the example DataService configuration."""

from ignitor.services.base import DataService


def _int(value) -> int:
    return int(value)


class PostService(DataService):
    """Posts: soft delete, audit timestamps, SSE, unique slugs."""

    filter_map = {
        "q": lambda v: {"title": {"icontains": v}},
        "created_after": lambda v: {"created_at": {"gte": v}},
        "created_before": lambda v: {"created_at": {"lte": v}},
        "min_id": lambda v: {"id": {"gte": _int(v)}},
        "max_id": lambda v: {"id": {"lte": _int(v)}},
    }

    async def create_post(self, title: str, body: str = "", channels=None):
        slug = await self.generate_unique_slug(title)
        return await self.create(
            {"title": title, "slug": slug, "body": body},
            broadcast_channels=channels,
        )

    async def update_post(self, post_id: int, changes: dict, channels=None):
        """Partial update. A new title re-derives the slug."""
        await self.get_by_id(post_id)
        if "title" in changes:
            changes = {
                **changes,
                "slug": await self.generate_unique_slug(changes["title"], exclude_id=post_id),
            }
        return await self.update_by_id(post_id, changes, broadcast_channels=channels)

    async def delete_post(self, post_id: int, channels=None):
        # Already soft-deleted posts are gone as far as callers can tell
        await self.get_by_id(post_id)
        return await self.delete_by_id(post_id, broadcast_channels=channels)
