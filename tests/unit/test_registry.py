import asyncio

import pytest

from agentx.errors import ConnectError, InvalidConfig
from agentx.mcp import connector, registry
from agentx.mcp.config import ProviderConfig
from agentx.mcp.registry import ConnectionRegistry, close_all, open_all


def _configs(*names: str) -> dict[str, ProviderConfig]:
    return {name: ProviderConfig(executable=f"{name}-server") for name in names}


@pytest.mark.asyncio
async def test_open_all_isolates_failures(monkeypatch, connection_factory) -> None:
    async def fake_connect(name, config, *, timeout_s=30.0):
        del config, timeout_s
        if name == "broken":
            raise ConnectError("spawn failed", provider=name)
        if name == "weird":
            raise RuntimeError("unexpected")
        return connection_factory(name, {"ping": "pong"})

    monkeypatch.setattr(connector, "connect", fake_connect)
    conns = await open_all(_configs("a", "broken", "weird", "b"))
    assert [conn.name for conn in conns] == ["a", "b"]


@pytest.mark.asyncio
async def test_open_all_empty_config() -> None:
    assert await open_all({}) == []


@pytest.mark.asyncio
async def test_open_all_skips_entries_without_transport() -> None:
    conns = await open_all({"nothing": ProviderConfig()})
    assert conns == []


@pytest.mark.asyncio
async def test_open_all_connects_concurrently(monkeypatch, connection_factory) -> None:
    started: list[str] = []
    gate = asyncio.Event()

    async def fake_connect(name, config, *, timeout_s=30.0):
        del config, timeout_s
        started.append(name)
        if len(started) == 3:
            gate.set()
        await asyncio.wait_for(gate.wait(), timeout=2)
        return connection_factory(name, {})

    monkeypatch.setattr(connector, "connect", fake_connect)
    conns = await open_all(_configs("a", "b", "c"))
    assert len(conns) == 3


@pytest.mark.asyncio
async def test_unreachable_sse_endpoint_yields_no_connections() -> None:
    configs = {"dead": ProviderConfig(endpoint="http://127.0.0.1:9/sse", kind="sse")}
    assert await open_all(configs, timeout_s=2.0) == []


@pytest.mark.asyncio
async def test_connect_rejects_entry_without_transport() -> None:
    with pytest.raises(InvalidConfig):
        await connector.connect("nothing", ProviderConfig())


class _Closable:
    def __init__(self, name: str, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.closed = False

    async def aclose(self, timeout_s: float = 5.0) -> None:
        del timeout_s
        if self.fail:
            raise ConnectError("close failed", provider=self.name)
        self.closed = True


@pytest.mark.asyncio
async def test_close_all_continues_after_failure() -> None:
    conns = [_Closable("a"), _Closable("b", fail=True), _Closable("c")]
    await close_all(conns)
    assert conns[0].closed is True
    assert conns[2].closed is True


@pytest.mark.asyncio
async def test_registry_releases_on_error(monkeypatch, connection_factory) -> None:
    opened = []

    async def fake_connect(name, config, *, timeout_s=30.0):
        del config, timeout_s
        conn = connection_factory(name, {"readFile": "hello"})
        opened.append(conn)
        return conn

    monkeypatch.setattr(connector, "connect", fake_connect)
    with pytest.raises(RuntimeError, match="model exploded"):
        async with ConnectionRegistry(_configs("fs")) as reg:
            assert reg.tool_names() == ["fs__readFile"]
            raise RuntimeError("model exploded")
    assert [conn.closed for conn in opened] == [True]


@pytest.mark.asyncio
async def test_registry_releases_on_cancel(monkeypatch, connection_factory) -> None:
    opened = []
    entered = asyncio.Event()

    async def fake_connect(name, config, *, timeout_s=30.0):
        del config, timeout_s
        conn = connection_factory(name, {})
        opened.append(conn)
        return conn

    monkeypatch.setattr(connector, "connect", fake_connect)

    async def turn() -> None:
        async with ConnectionRegistry(_configs("a", "b")):
            entered.set()
            await asyncio.sleep(60)

    task = asyncio.create_task(turn())
    await entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert [conn.closed for conn in opened] == [True, True]


@pytest.mark.asyncio
async def test_cancelled_open_closes_finished_connections(monkeypatch, connection_factory) -> None:
    opened = []

    async def fake_connect(name, config, *, timeout_s=30.0):
        del config, timeout_s
        if name == "slow":
            await asyncio.sleep(60)
        conn = connection_factory(name, {})
        opened.append(conn)
        return conn

    monkeypatch.setattr(connector, "connect", fake_connect)
    task = asyncio.create_task(registry.open_all(_configs("fast", "slow")))
    while not opened:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert opened[0].closed is True
