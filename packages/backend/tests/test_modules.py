"""Module registry tests — ordering, dependencies, shutdown."""

import pytest

from ignitor.modules import IgnitorModule, ModuleDependencyError, ModuleRegistry, default_modules
from ignitor.realtime import Broadcaster


class Recorder:
    def __init__(self):
        self.events = []

    def info(self, event, **kw):
        self.events.append(("info", event, kw))

    def exception(self, event, **kw):
        self.events.append(("exception", event, kw))


class FakeContext:
    def __init__(self):
        self.logger = Recorder()
        self.broadcaster = Broadcaster()


def make_module(name, deps=(), log=None, fail_shutdown=False):
    class _Module(IgnitorModule):
        async def initialize(self, context):
            log.append(f"init:{self.name}")

        async def on_shutdown(self):
            log.append(f"stop:{self.name}")
            if fail_shutdown:
                raise RuntimeError("cannot stop")

    module = _Module()
    module.name = name
    module.dependencies = deps
    return module


@pytest.mark.asyncio
async def test_initialize_in_order_shutdown_in_reverse():
    log = []
    registry = ModuleRegistry([
        make_module("db", log=log),
        make_module("users", ("db",), log=log),
        make_module("posts", ("db", "users"), log=log),
    ])
    ctx = FakeContext()

    await registry.initialize_all(ctx)
    await registry.shutdown_all(ctx.logger)

    assert log == [
        "init:db", "init:users", "init:posts",
        "stop:posts", "stop:users", "stop:db",
    ]


@pytest.mark.asyncio
async def test_dependency_must_be_registered_first():
    log = []
    registry = ModuleRegistry([
        make_module("posts", ("users",), log=log),
        make_module("users", log=log),
    ])
    with pytest.raises(ModuleDependencyError):
        await registry.initialize_all(FakeContext())
    assert log == []


@pytest.mark.asyncio
async def test_failing_shutdown_does_not_stop_others():
    log = []
    registry = ModuleRegistry([
        make_module("a", log=log),
        make_module("b", log=log, fail_shutdown=True),
    ])
    ctx = FakeContext()
    await registry.initialize_all(ctx)
    await registry.shutdown_all(ctx.logger)

    assert log[-2:] == ["stop:b", "stop:a"]
    assert ("exception", "module.shutdown_failed", {"module": "b"}) in ctx.logger.events


def test_duplicate_and_nameless_modules_rejected():
    registry = ModuleRegistry([make_module("a", log=[])])
    with pytest.raises(ValueError):
        registry.register(make_module("a", log=[]))
    with pytest.raises(ValueError):
        registry.register(IgnitorModule())


def test_default_modules():
    registry = ModuleRegistry(default_modules())
    assert registry.names() == ["posts"]
    assert all(m.router is not None for m in registry)
