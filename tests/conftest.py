"""Shared test fixtures.

A fake protocol client stands in for the real transport: tests emit
inbound events on it and inspect the requests it was asked to queue.
Settings shrink every delay so timer-driven behaviour runs in
milliseconds.
"""

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from shopbot.bot.config import Settings
from shopbot.bot.protocol import ClientOptions
from shopbot.bot.session import BotSession


class FakeClient:
    """In-memory protocol client."""

    def __init__(self, options: ClientOptions) -> None:
        self.options = options
        self.handlers: dict[str, list[Callable[..., None]]] = defaultdict(list)
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.disconnect_calls = 0
        self.fail_queue = False

    def on(self, event: str, handler: Callable[..., None]) -> None:
        self.handlers[event].append(handler)

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is None:
            self.handlers.clear()
        else:
            self.handlers.pop(event, None)

    def queue(self, kind: str, params: dict[str, Any]) -> None:
        if self.fail_queue:
            raise RuntimeError("socket closed")
        self.sent.append((kind, params))

    def disconnect(self, reason: str = "") -> None:
        self.disconnect_calls += 1
        self.emit("close")

    def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self.handlers.get(event, [])):
            if payload is None:
                handler()
            else:
                handler(payload)

    def requests(self, kind: str) -> list[dict[str, Any]]:
        return [params for sent_kind, params in self.sent if sent_kind == kind]


class FakeFactory:
    """Client factory that records every client it creates.

    Exceptions in ``errors`` are raised, one per call, before any client
    is created.
    """

    def __init__(self) -> None:
        self.clients: list[FakeClient] = []
        self.errors: list[Exception] = []

    def __call__(self, options: ClientOptions) -> FakeClient:
        if self.errors:
            raise self.errors.pop(0)
        client = FakeClient(options)
        self.clients.append(client)
        return client

    @property
    def last(self) -> FakeClient:
        return self.clients[-1]


def item(
    network_id: int,
    *,
    name: str | None = None,
    lore: list[str] | None = None,
    count: int = 1,
    stack_id: int = 0,
) -> dict[str, Any]:
    """Raw item payload as the protocol client would decode it."""
    payload: dict[str, Any] = {
        "network_id": network_id,
        "count": count if network_id else 0,
        "metadata": 0,
        "stack_id": stack_id,
        "block_runtime_id": 0,
    }
    if name is not None or lore is not None:
        display: dict[str, Any] = {}
        if name is not None:
            display["Name"] = {"type": "string", "value": name}
        if lore is not None:
            display["Lore"] = {
                "type": "list",
                "value": {"type": "string", "value": lore},
            }
        payload["extra"] = {"nbt": {"value": {"display": {"type": "compound", "value": display}}}}
    return payload


AIR = {"network_id": 0}


def menu(size: int = 27, **slots: dict[str, Any]) -> list[dict[str, Any]]:
    """A window of ``size`` slots; keyword args ``s<index>`` fill slots."""
    items = [dict(AIR) for _ in range(size)]
    for key, value in slots.items():
        items[int(key.removeprefix("s"))] = value
    return items


class Menus:
    """The three shop layouts plus a few variants."""

    @staticmethod
    def main() -> list[dict[str, Any]]:
        return menu(s15=item(660, name="§aShard Shop"), s11=item(54, name="Crates"))

    @staticmethod
    def sub() -> list[dict[str, Any]]:
        band = {f"s{slot}": item(52, name="Spawner") for slot in range(9, 18)}
        band["s13"] = item(52, name="§eSkeleton Spawner", lore=["Cost: 100 shards"])
        return menu(**band)

    @staticmethod
    def confirm() -> list[dict[str, Any]]:
        return menu(
            s11=item(35, name="§cCancel"),
            s13=item(52, name="Skeleton Spawner"),
            s15=item(35, name="§aConfirm"),
        )


@pytest.fixture
def menus() -> type[Menus]:
    return Menus


@pytest.fixture
def fast_settings(tmp_path: Path) -> Settings:
    """Settings with every delay shrunk to milliseconds."""
    return Settings(
        auth_cache_path=str(tmp_path / "auth"),
        reconnect_delay_seconds=0.01,
        reconnect_max_attempts=3,
        emergency_reconnect_delay_seconds=0.05,
        connect_attempts=1,
        connect_retry_wait_seconds=0,
        position_interval_seconds=0.01,
        anti_afk_interval_seconds=0.02,
        menu_open_delay_seconds=0.01,
        menu_retry_interval_seconds=0.02,
        menu_retry_max=2,
        window_settle_seconds=0.01,
        afk_first_probe_seconds=0.01,
        afk_probe_interval_seconds=0.01,
        afk_max_probes=3,
        afk_close_delay_seconds=0.01,
        drop_open_delay_seconds=0.01,
        drop_spacing_seconds=0.01,
        drop_close_padding_seconds=0.01,
    )


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def session(fast_settings: Settings, factory: FakeFactory) -> BotSession:
    return BotSession("bot1", factory=factory, settings=fast_settings)


@pytest.fixture
def connect() -> Callable[[BotSession], Awaitable[FakeClient]]:
    """Join and spawn a session; returns its fake client."""

    async def _connect(target: BotSession) -> FakeClient:
        await target.join()
        client = target.client
        assert isinstance(client, FakeClient)
        client.emit("start_game", {"player_position": {"x": 10, "y": 70, "z": -5}, "runtime_entity_id": 1})
        client.emit("spawn")
        return client

    return _connect


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate on the event loop until it holds or time runs out."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(0.005)

    return _wait_until


@pytest.fixture
def raw_item() -> Callable[..., dict[str, Any]]:
    return item


@pytest.fixture
def raw_menu() -> Callable[..., list[dict[str, Any]]]:
    return menu
