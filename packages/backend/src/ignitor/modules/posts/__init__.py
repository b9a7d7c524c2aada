"""Posts — example resource module (CRUD, soft delete, slugs, live feed)."""

from ignitor.modules.base import IgnitorModule
from ignitor.modules.posts.router import router


class PostsModule(IgnitorModule):
    name = "posts"
    router = router
