"""Tests for boundary records."""

import pytest
from pydantic import ValidationError

from shopbot.bot.models import (
    ContainerCloseEvent,
    ErrorEvent,
    InventoryContentEvent,
    ItemStack,
    RespawnEvent,
    StartGameEvent,
    TextEvent,
    item_id,
)


class TestItemStack:
    def test_display_name_from_nbt(self, raw_item) -> None:
        stack = ItemStack.model_validate(raw_item(52, name="§eSkeleton  Spawner"))
        assert stack.display_name == "skeleton spawner"

    def test_display_name_at_nested_depth(self) -> None:
        raw = {
            "network_id": 660,
            "count": 1,
            "extra": {"nbt": {"nbt": {"value": {"display": {"value": {"Name": {"value": "Shard Shop"}}}}}}},
        }
        assert ItemStack.model_validate(raw).display_name == "shard shop"

    def test_display_name_falls_back_to_plain_name(self) -> None:
        stack = ItemStack.model_validate({"network_id": 152, "count": 1, "name": "AFK Zone 1"})
        assert stack.display_name == "afk zone 1"

    def test_lore_joined(self, raw_item) -> None:
        stack = ItemStack.model_validate(raw_item(52, name="Spawner", lore=["§7Cost:", "", "100 Shards"]))
        assert stack.lore == "cost: 100 shards"
        assert stack.searchable_text == "spawner cost: 100 shards"

    def test_empty_slot_has_no_text(self) -> None:
        stack = ItemStack.model_validate({"network_id": 0, "name": "air"})
        assert stack.is_empty
        assert stack.searchable_text == ""
        assert not stack.matches_keywords([["air"]])

    def test_matches_any_group(self, raw_item) -> None:
        stack = ItemStack.model_validate(raw_item(52, name="Skeleton Spawner"))
        assert stack.matches_keywords([["zombie"], ["spawner", "skeleton"]])
        assert not stack.matches_keywords([["zombie", "spawner"]])

    def test_unknown_fields_survive_to_wire(self) -> None:
        stack = ItemStack.model_validate({"network_id": 5, "count": 1, "has_stack_id": 1})
        assert stack.to_wire()["has_stack_id"] == 1

    def test_item_id_of_missing_slot(self) -> None:
        assert item_id(None) == 0
        assert item_id(ItemStack(network_id=9)) == 9


class TestStartGame:
    @pytest.mark.parametrize("key", ["player_position", "position", "spawn_position"])
    def test_position_keys(self, key: str) -> None:
        event = StartGameEvent.model_validate({key: {"x": 1, "y": 2, "z": 3}, "runtime_entity_id": 7})
        assert (event.position.x, event.position.y, event.position.z) == (1, 2, 3)
        assert event.runtime_entity_id == 7

    def test_missing_y_defaults_to_64(self) -> None:
        event = StartGameEvent.model_validate({"player_position": {"x": 1, "z": 3}})
        assert event.position.y == 64

    def test_no_position_at_all(self) -> None:
        event = StartGameEvent.model_validate({})
        assert (event.position.x, event.position.y, event.position.z) == (0, 64, 0)


def test_respawn_position_is_partial() -> None:
    event = RespawnEvent.model_validate({"position": {"x": 4.0}})
    assert event.position == {"x": 4.0}


def test_text_sender_defaults_to_server() -> None:
    assert TextEvent.model_validate({"type": "raw", "message": "hi"}).sender == "Server"
    assert TextEvent.model_validate({"type": "chat", "source_name": "Steve"}).sender == "Steve"


def test_container_close_server_flag() -> None:
    event = ContainerCloseEvent.model_validate({"window_id": 3, "server": True})
    assert event.server
    assert event.window_type is None


def test_inventory_content_keeps_order(raw_item) -> None:
    event = InventoryContentEvent.model_validate(
        {"window_id": "first", "input": [raw_item(1), {"network_id": 0}, raw_item(2)]}
    )
    assert [stack.network_id for stack in event.input] == [1, 0, 2]


def test_inventory_content_requires_window_id() -> None:
    with pytest.raises(ValidationError):
        InventoryContentEvent.model_validate({"input": []})


class TestErrorEvent:
    def test_from_exception(self) -> None:
        error = ErrorEvent.from_payload(RuntimeError("Ping timed out"))
        assert error.is_ping_timeout
        assert not error.is_read_error

    def test_from_dict_and_string(self) -> None:
        assert ErrorEvent.from_payload({"message": "Read error: ECONNRESET"}).is_read_error
        assert ErrorEvent.from_payload("boom").message == "boom"
        assert ErrorEvent.from_payload(None).message == ""
