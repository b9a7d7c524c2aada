"""Feature modules mounted by create_app()."""

from ignitor.modules.base import IgnitorModule, ModuleDependencyError, ModuleRegistry


def default_modules() -> list[IgnitorModule]:
    from ignitor.modules.posts import PostsModule

    return [PostsModule()]


__all__ = ["IgnitorModule", "ModuleDependencyError", "ModuleRegistry", "default_modules"]
