import asyncio
import logging
import unittest

import pytest

from liteioc import Container, ProviderDisposedError, SupportsDestroy, SupportsInit


class Tracked:
    def __init__(self):
        self.events = []

    async def on_init(self):
        self.events.append("init")

    async def on_destroy(self):
        self.events.append("destroy")


class SyncTracked:
    def __init__(self):
        self.events = []

    def on_init(self):
        self.events.append("init")

    def on_destroy(self):
        self.events.append("destroy")


class Broken:
    def on_destroy(self):
        raise RuntimeError("boom")


class TestLifecycleHooks(unittest.IsolatedAsyncioTestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()

    def test_hook_protocols_are_structural(self):
        assert isinstance(Tracked(), SupportsInit)
        assert isinstance(Tracked(), SupportsDestroy)
        assert not isinstance(object(), SupportsInit)
        assert not isinstance(Broken(), SupportsInit)

    async def test_on_init_called_once_after_construction(self):
        self.cont.register_singleton(Tracked)
        provider = self.cont.build()

        svc = await provider.get_required(Tracked)
        await provider.get_required(Tracked)

        assert svc.events == ["init"]

    async def test_sync_hooks_are_supported(self):
        self.cont.register_scoped(SyncTracked)
        scope = self.cont.build().create_scope()

        svc = await scope.get_required(SyncTracked)
        await scope.dispose()

        assert svc.events == ["init", "destroy"]

    async def test_on_init_sees_dependencies(self):
        class Config:
            url = "sqlite://"

        class Client:
            def __init__(self, config):
                self.config = config
                self.url = None

            async def on_init(self):
                self.url = self.config.url

        self.cont.register_singleton(Config)
        self.cont.register_singleton(Client, [Config])

        client = await self.cont.build().get_required(Client)
        assert client.url == "sqlite://"

    async def test_failing_on_init_propagates_and_caches_nothing(self):
        calls = []

        class Flaky:
            async def on_init(self):
                calls.append(1)
                if len(calls) == 1:
                    raise ValueError("not ready")

        self.cont.register_singleton(Flaky)
        provider = self.cont.build()

        with pytest.raises(ValueError, match="not ready"):
            await provider.get(Flaky)

        assert isinstance(await provider.get(Flaky), Flaky)
        assert len(calls) == 2

    async def test_failed_construction_in_cycle_evicts_services_holding_it(self):
        calls = []

        class Left:
            def __init__(self, right):
                self.right = right

            async def on_init(self):
                calls.append(1)
                if len(calls) == 1:
                    raise ValueError("not ready")

        class Right:
            def __init__(self, left):
                self.left = left

        self.cont.register_singleton("left", Left, ["right"])
        self.cont.register_singleton("right", Right, ["left"])
        provider = self.cont.build()

        with pytest.raises(ValueError, match="not ready"):
            await provider.get("left")

        left = await provider.get_required("left")
        right = await provider.get_required("right")
        assert left.right is right
        assert right.left is left

    async def test_failed_transient_in_cycle_evicts_singleton_holding_it(self):
        attempts = []

        class Session:
            def __init__(self, registry):
                attempts.append(1)
                if len(attempts) == 1:
                    raise ConnectionError("refused")
                self.registry = registry

        class Registry:
            def __init__(self, session):
                self.session = session

        self.cont.register_transient("session", Session, ["registry"])
        self.cont.register_singleton("registry", Registry, ["session"])
        provider = self.cont.build()

        with pytest.raises(ConnectionError):
            await provider.get("session")

        session = await provider.get_required("session")
        registry = await provider.get_required("registry")
        assert session.registry is registry
        assert registry.session is session

    async def test_factory_results_do_not_get_on_init(self):
        self.cont.register_singleton(Tracked, lambda p: Tracked())

        svc = await self.cont.build().get_required(Tracked)
        assert svc.events == []

    async def test_dispose_calls_on_destroy_once(self):
        self.cont.register_singleton(Tracked)
        provider = self.cont.build()
        svc = await provider.get_required(Tracked)

        await provider.dispose()
        await provider.dispose()

        assert svc.events == ["init", "destroy"]
        assert provider.disposed

    async def test_dispose_scope_only_tears_down_its_scoped_instances(self):
        self.cont.register_singleton("single", Tracked)
        self.cont.register_scoped("scoped", SyncTracked)
        provider = self.cont.build()
        scope = provider.create_scope()

        single = await scope.get_required("single")
        scoped = await scope.get_required("scoped")
        await scope.dispose()

        assert scoped.events == ["init", "destroy"]
        assert single.events == ["init"]

        await provider.dispose()
        assert single.events == ["init", "destroy"]

    async def test_transients_are_not_tracked_for_disposal(self):
        self.cont.register_transient(Tracked)
        provider = self.cont.build()
        svc = await provider.get_required(Tracked)

        await provider.dispose()
        assert svc.events == ["init"]

    async def test_failing_on_destroy_is_logged_and_teardown_continues(self):
        self.cont.register_singleton("first", Tracked)
        self.cont.register_singleton("broken", Broken)
        self.cont.register_singleton("last", Tracked)
        provider = self.cont.build()
        first = await provider.get_required("first")
        await provider.get_required("broken")
        last = await provider.get_required("last")

        with self.assertLogs("liteioc", level=logging.ERROR) as logs:
            await provider.dispose()

        assert first.events == ["init", "destroy"]
        assert last.events == ["init", "destroy"]
        assert any("Broken" in line for line in logs.output)

    async def test_dispose_runs_in_reverse_creation_order(self):
        order = []

        class Db:
            def on_destroy(self):
                order.append("db")

        class Repo:
            def __init__(self, db):
                self.db = db

            def on_destroy(self):
                order.append("repo")

        self.cont.register_singleton(Db)
        self.cont.register_singleton(Repo, [Db])
        provider = self.cont.build()
        await provider.get_required(Repo)

        await provider.dispose()
        assert order == ["repo", "db"]

    async def test_same_instance_under_two_tokens_destroyed_once(self):
        shared = SyncTracked()
        self.cont.register_singleton("a", lambda p: shared)
        self.cont.register_singleton("b", lambda p: shared)
        provider = self.cont.build()
        await provider.get_required("a")
        await provider.get_required("b")

        await provider.dispose()
        assert shared.events == ["destroy"]

    async def test_get_after_dispose_raises(self):
        self.cont.register_singleton(Tracked)
        provider = self.cont.build()
        scope = provider.create_scope()
        await provider.dispose()

        with pytest.raises(ProviderDisposedError):
            await provider.get(Tracked)
        with pytest.raises(ProviderDisposedError):
            await provider.get_all(Tracked)
        with pytest.raises(ProviderDisposedError):
            await scope.get(Tracked)
        with pytest.raises(ProviderDisposedError):
            provider.create_scope()
        assert not provider.is_registered(Tracked)

    async def test_dispose_during_construction_tears_down_late_instance(self):
        started = asyncio.Event()
        release = asyncio.Event()
        built = []

        class Slow(Tracked):
            async def on_init(self):
                built.append(self)
                started.set()
                await release.wait()
                await super().on_init()

        self.cont.register_singleton(Slow)
        provider = self.cont.build()

        pending = asyncio.create_task(provider.get(Slow))
        await started.wait()
        await provider.dispose()
        release.set()

        with pytest.raises(ProviderDisposedError):
            await pending
        assert built[0].events == ["init", "destroy"]

    async def test_async_context_manager_disposes(self):
        self.cont.register_scoped(Tracked)

        async with self.cont.build().create_scope() as scope:
            svc = await scope.get_required(Tracked)

        assert svc.events == ["init", "destroy"]
        assert scope.disposed
