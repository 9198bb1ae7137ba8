"""
Config provider unit tests
"""

import asyncio
from datetime import timedelta

import pytest

from consul_config.common.exceptions import ConfigurationMissingError, StoreCommunicationError
from consul_config.service import ConsulConfigProvider

from .conftest import CONFIG_KEY, wait_until


@pytest.fixture
def provider(source, watcher) -> ConsulConfigProvider:
    return ConsulConfigProvider(source, watcher)


class TestLoad:
    """Startup load"""

    @pytest.mark.asyncio
    async def test_load_parses_json(self, provider, fake_consul):
        fake_consul.put(CONFIG_KEY, b'{"database": {"host": "db", "port": 5432}}')

        await provider.load()

        assert provider.get("database:host") == "db"
        assert provider.get("database:port") == 5432
        assert provider.get("database:user", "admin") == "admin"
        assert provider.get("missing:path") is None

    @pytest.mark.asyncio
    async def test_list_elements_addressed_by_position(self, provider, fake_consul):
        fake_consul.put(CONFIG_KEY, b'{"servers": [{"name": "a"}, {"name": "b"}], "ports": [80]}')

        await provider.load()

        assert provider.get("servers:0:name") == "a"
        assert provider.get("servers:1") == {"name": "b"}
        assert provider.get("ports:0") == 80
        assert provider.get("ports:1") is None
        assert provider.get("ports:-1") is None
        assert provider.get("ports:first", "x") == "x"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key_to_remove,path,unprefixed", [
        ("", "app:config:database:host", "database:host"),
        ("app/", "config:database:host", "database:host"),
        ("app/config", "database:host", "config:database:host"),
        ("other/", "app:config:database:host", "database:host"),
    ])
    async def test_key_to_remove_sets_path_prefix(
        self, source, provider, fake_consul, key_to_remove, path, unprefixed
    ):
        source.key_to_remove = key_to_remove
        fake_consul.put(CONFIG_KEY, b'{"database": {"host": "db"}}')

        await provider.load()

        assert provider.get(path) == "db"
        assert provider.get(unprefixed) is None

    @pytest.mark.asyncio
    async def test_optional_missing_key_loads_empty(self, source, provider):
        source.optional = True

        await provider.load()

        assert provider.data == {}

    @pytest.mark.asyncio
    async def test_required_missing_key_raises(self, provider):
        with pytest.raises(ConfigurationMissingError):
            await provider.load()

    @pytest.mark.asyncio
    async def test_load_exception_hook_receives_context(self, source, provider, fake_consul):
        fake_consul.status_override = 503
        contexts = []
        source.on_load_exception = contexts.append

        with pytest.raises(StoreCommunicationError):
            await provider.load()

        assert len(contexts) == 1
        assert contexts[0].key == CONFIG_KEY
        assert isinstance(contexts[0].exception, StoreCommunicationError)

    @pytest.mark.asyncio
    async def test_ignored_load_exception_keeps_previous_data(self, source, provider, fake_consul):
        fake_consul.put(CONFIG_KEY, b'{"a": 1}')
        await provider.load()

        def ignore(context):
            context.ignore = True

        source.on_load_exception = ignore
        fake_consul.status_override = 500

        await provider.load()

        assert provider.data == {"a": 1}

    @pytest.mark.asyncio
    async def test_invalid_json_goes_through_hook(self, source, provider, fake_consul):
        fake_consul.put(CONFIG_KEY, b"not json")
        contexts = []
        source.on_load_exception = contexts.append

        with pytest.raises(ValueError):
            await provider.load()

        assert len(contexts) == 1


class TestRun:
    """Reload on change"""

    @pytest.mark.asyncio
    async def test_reloads_and_notifies_on_each_change(self, source, provider, fake_consul):
        source.reload_on_change = True
        fake_consul.wait_timeout = 5
        fake_consul.put(CONFIG_KEY, b'{"v": 1}')
        await provider.load()
        seen = []
        provider.add_reload_listener(lambda data: seen.append(data["v"]))

        runner = asyncio.ensure_future(provider.run())
        await wait_until(lambda: fake_consul.in_flight == 1)
        fake_consul.put(CONFIG_KEY, b'{"v": 2}')
        await wait_until(lambda: seen == [2])

        await wait_until(lambda: fake_consul.in_flight == 1)
        fake_consul.put(CONFIG_KEY, b'{"v": 3}')
        await wait_until(lambda: seen == [2, 3])

        source.cancellation.set()
        await asyncio.wait_for(runner, timeout=1)

        assert provider.get("v") == 3
        assert not provider.watcher.is_watching

    @pytest.mark.asyncio
    async def test_failed_reload_is_retried_before_notifying(self, source, provider, fake_consul):
        source.reload_on_change = True
        fake_consul.wait_timeout = 5
        fake_consul.put(CONFIG_KEY, b'{"v": 1}')
        await provider.load()
        seen = []
        provider.add_reload_listener(lambda data: seen.append(data["v"]))
        contexts = []

        runner = asyncio.ensure_future(provider.run(on_exception=contexts.append))
        await wait_until(lambda: fake_consul.in_flight == 1)
        fake_consul.load_failures = 1
        fake_consul.put(CONFIG_KEY, b'{"v": 2}')
        await wait_until(lambda: seen == [2])

        assert provider.data == {"v": 2}
        assert len(contexts) == 1
        assert isinstance(contexts[0].exception, StoreCommunicationError)

        source.cancellation.set()
        await asyncio.wait_for(runner, timeout=1)

    @pytest.mark.asyncio
    async def test_cancellation_stops_reload_retries(self, source, provider, fake_consul):
        source.reload_on_change = True
        source.on_watch_exception = lambda context: timedelta(seconds=30)
        fake_consul.wait_timeout = 5
        fake_consul.put(CONFIG_KEY, b'{"v": 1}')
        await provider.load()
        seen = []
        provider.add_reload_listener(seen.append)

        runner = asyncio.ensure_future(provider.run(on_exception=lambda context: None))
        await wait_until(lambda: fake_consul.in_flight == 1)
        fake_consul.load_failures = 100
        fake_consul.put(CONFIG_KEY, b'{"v": 2}')
        await wait_until(lambda: fake_consul.load_failures == 99)
        source.cancellation.set()
        await asyncio.wait_for(runner, timeout=1)

        assert seen == []
        assert provider.data == {"v": 1}

    @pytest.mark.asyncio
    async def test_run_without_reload_on_change_returns(self, provider, fake_consul):
        await asyncio.wait_for(provider.run(), timeout=1)

        assert fake_consul.requests == []

    @pytest.mark.asyncio
    async def test_cancellation_stops_run(self, source, provider, fake_consul):
        source.reload_on_change = True
        fake_consul.wait_timeout = 5
        fake_consul.put(CONFIG_KEY, b"{}")
        await provider.load()
        seen = []
        provider.add_reload_listener(seen.append)

        runner = asyncio.ensure_future(provider.run())
        await wait_until(lambda: fake_consul.in_flight == 1)
        source.cancellation.set()
        await asyncio.wait_for(runner, timeout=1)

        assert seen == []
