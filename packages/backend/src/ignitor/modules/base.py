"""Pluggable modules — a resource's router plus its startup/shutdown hooks.

Learn: A module bundles everything one feature contributes:

    class PostsModule(IgnitorModule):
        name = "posts"
        dependencies = ()
        router = posts_router

Modules are initialized in registration order. A module may only depend
on modules registered before it — otherwise startup fails, loudly.
Shutdown runs in reverse order; a failing on_shutdown() is logged and the
remaining modules still shut down.
"""

from typing import Optional, Sequence

from fastapi import APIRouter

from ignitor.context import AppContext


class ModuleDependencyError(RuntimeError):
    """A module depends on something that isn't registered before it."""


class IgnitorModule:
    name: str = ""
    dependencies: Sequence[str] = ()
    router: Optional[APIRouter] = None

    async def initialize(self, context: AppContext) -> None:
        """Called once at startup, after the database is reachable."""

    async def on_shutdown(self) -> None:
        """Called once at shutdown, in reverse registration order."""


class ModuleRegistry:
    def __init__(self, modules: Sequence[IgnitorModule] = ()):
        self._modules: list[IgnitorModule] = []
        self._initialized: list[IgnitorModule] = []
        for module in modules:
            self.register(module)

    def __iter__(self):
        return iter(self._modules)

    def __len__(self) -> int:
        return len(self._modules)

    def names(self) -> list[str]:
        return [m.name for m in self._modules]

    def register(self, module: IgnitorModule) -> None:
        if not module.name:
            raise ValueError(f"{type(module).__name__} has no name")
        if module.name in self.names():
            raise ValueError(f"Module {module.name!r} is already registered")
        self._modules.append(module)

    def check_dependencies(self) -> None:
        seen: set[str] = set()
        for module in self._modules:
            missing = [dep for dep in module.dependencies if dep not in seen]
            if missing:
                raise ModuleDependencyError(
                    f"Module {module.name!r} depends on {missing}, "
                    "which must be registered before it"
                )
            seen.add(module.name)

    async def initialize_all(self, context: AppContext) -> None:
        self.check_dependencies()
        for module in self._modules:
            context.logger.info("module.initializing", module=module.name)
            await module.initialize(context)
            self._initialized.append(module)

    async def shutdown_all(self, logger) -> None:
        while self._initialized:
            module = self._initialized.pop()
            logger.info("module.shutting_down", module=module.name)
            try:
                await module.on_shutdown()
            except Exception:
                logger.exception("module.shutdown_failed", module=module.name)
