"""Tests for the AFK menu flow."""

import logging

import pytest

from shopbot.bot import protocol
from shopbot.bot.afk import find_afk_target
from shopbot.bot.config import MenuLayout
from shopbot.bot.models import ItemStack
from shopbot.bot.windows import WindowMirror

LAYOUT = MenuLayout()


def mirror_with(**windows: list[dict]) -> WindowMirror:
    mirror = WindowMirror(LAYOUT.player_window_ids, LAYOUT.inventory_window_ids)
    for window_id, raw in windows.items():
        mirror.apply_full(window_id, [ItemStack.model_validate(entry) for entry in raw])
    return mirror


class TestFindTarget:
    def test_prefers_non_full_entry(self, raw_menu, raw_item) -> None:
        mirror = mirror_with(
            first=raw_menu(54, s10=raw_item(152, name="§cAFK Zone 1 (FULL)"), s11=raw_item(152, name="§aAFK Zone 2"))
        )
        target = find_afk_target(mirror, LAYOUT)
        assert (target.window_id, target.slot, target.mode) == ("first", 11, "non-full AFK")

    def test_all_full_takes_first(self, raw_menu, raw_item) -> None:
        mirror = mirror_with(
            first=raw_menu(54, s10=raw_item(152, name="AFK 1 full"), s11=raw_item(152, name="AFK 2 full"))
        )
        target = find_afk_target(mirror, LAYOUT)
        assert (target.slot, target.mode) == (10, "fallback AFK")

    def test_window_with_most_matches_wins(self, raw_menu, raw_item) -> None:
        small = raw_menu(s0=raw_item(1, name="AFK"))
        large = raw_menu(s3=raw_item(1, name="AFK a"), s4=raw_item(1, name="AFK b"), s5=raw_item(1, name="AFK c"))
        target = find_afk_target(mirror_with(w1=small, w2=large), LAYOUT)
        assert (target.window_id, target.slot) == ("w2", 3)

    def test_few_marker_blocks_are_not_a_menu(self, raw_menu, raw_item) -> None:
        chest = raw_menu(**{f"s{slot}": raw_item(152) for slot in range(3)})
        assert find_afk_target(mirror_with(w1=chest), LAYOUT) is None

    def test_many_marker_blocks_are_a_menu(self, raw_menu, raw_item) -> None:
        grid = raw_menu(54, **{f"s{slot}": raw_item(152) for slot in range(10, 20)})
        target = find_afk_target(mirror_with(w1=grid), LAYOUT)
        assert target.slot == 10

    def test_player_windows_skipped(self, raw_menu, raw_item) -> None:
        mirror = mirror_with(inventory=raw_menu(36, s0=raw_item(152, name="AFK Zone")))
        assert find_afk_target(mirror, LAYOUT) is None

    def test_fixed_slot_fallback(self, raw_menu, raw_item) -> None:
        mirror = mirror_with(first=raw_menu(54, s49=raw_item(7, name="Zone Picker")))
        target = find_afk_target(mirror, LAYOUT)
        assert (target.window_id, target.slot, target.mode) == ("first", 49, "slot 49 fallback")

    def test_no_fallback_without_first_window(self, raw_menu, raw_item) -> None:
        mirror = mirror_with(w1=raw_menu(54, s49=raw_item(7, name="Zone Picker")))
        assert "first" not in mirror
        assert find_afk_target(mirror, LAYOUT) is None

    def test_nothing_found(self, raw_menu) -> None:
        assert find_afk_target(mirror_with(first=raw_menu(54)), LAYOUT) is None


@pytest.mark.asyncio
async def test_requires_connection(session, caplog) -> None:
    with caplog.at_level(logging.WARNING):
        assert not session.afk()
    assert "Not connected, cannot use afk command" in caplog.text


@pytest.mark.asyncio
async def test_clicks_and_closes(session, connect, raw_menu, raw_item, wait_until) -> None:
    client = await connect(session)
    assert session.afk()
    assert client.requests(protocol.COMMAND_REQUEST)[-1]["command"] == "/afk"

    client.emit("container_open", {"window_id": "first", "window_type": "container"})
    client.emit(
        "inventory_content",
        {"window_id": "first", "input": raw_menu(54, s20=raw_item(152, name="AFK Zone 3", stack_id=8))},
    )
    await wait_until(lambda: client.requests(protocol.CONTAINER_CLOSE))

    (click,) = client.requests(protocol.ITEM_STACK_REQUEST)
    source = click["requests"][0]["actions"][0]["source"]
    assert (source["slot"], source["stack_id"]) == (20, 8)
    assert client.requests(protocol.CONTAINER_CLOSE)[0]["window_id"] == "first"
    assert "first" not in session.mirror
    assert session.mirror.focused is None


@pytest.mark.asyncio
async def test_gives_up_after_probes(session, connect, wait_until, caplog) -> None:
    client = await connect(session)
    with caplog.at_level(logging.WARNING):
        session.afk()
        await wait_until(lambda: "Could not find AFK option" in caplog.text)

    assert client.requests(protocol.ITEM_STACK_REQUEST) == []
    assert session.afk_flow.attempts == 3
    assert not session.scheduler.is_pending("afk.probe")
