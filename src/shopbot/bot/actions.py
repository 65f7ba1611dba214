"""Builders for outbound requests.

Every builder returns an ``OutgoingRequest``; nothing here talks to the
network. The builder owns the session tick, which increases by one per
avatar-state update. Item-move requests take a negative request id derived
from the tick so they never collide with ids the server assigns, bumped
past the last one issued so two requests in one tick stay distinct.
"""

from typing import Any, NamedTuple

from shopbot.bot import protocol
from shopbot.bot.errors import ProtocolRequestError
from shopbot.bot.models import ItemStack, Rotation, Vec3, WindowId

FLAG_ASCEND = 0x1
FLAG_SNEAKING = 0x2000

_REQUEST_ID_SPAN = 100_000
_NULL_UUID = "00000000-0000-0000-0000-000000000000"
_COMMAND_VERSION = "72"


class OutgoingRequest(NamedTuple):
    kind: str
    params: dict[str, Any]


def _zero2() -> dict[str, float]:
    return {"x": 0, "z": 0}


class OutgoingActionBuilder:
    """Builds requests for one session.

    Args:
        cursor_window_id: Inventory id of the cursor slot for legacy clicks.
        hotbar_size: Slots below this index belong to the hotbar container.
    """

    def __init__(self, cursor_window_id: int = 124, hotbar_size: int = 9) -> None:
        self.tick = 0
        self._last_request = 0
        self.cursor_window_id = cursor_window_id
        self.hotbar_size = hotbar_size

    def next_tick(self) -> int:
        """Return the current tick and advance it."""
        tick = self.tick
        self.tick += 1
        return tick

    def request_id(self, offset: int = 0) -> int:
        return -((self.tick % _REQUEST_ID_SPAN) + 1 + offset)

    def next_request_id(self) -> int:
        """Request id for the next item-move request, never repeated within a span."""
        magnitude = -self.request_id()
        if self._last_request < magnitude or self._last_request >= _REQUEST_ID_SPAN:
            self._last_request = magnitude
        else:
            self._last_request += 1
        return -self._last_request

    # ------------------------------------------------------------------
    # Item stack requests
    # ------------------------------------------------------------------

    def take_to_cursor(self, slot: int, stack_id: int = 0) -> OutgoingRequest:
        """Pick up one item from a container slot onto the cursor."""
        if slot < 0:
            raise ProtocolRequestError(protocol.ITEM_STACK_REQUEST, f"invalid slot {slot}")
        action = {
            "type_id": "take",
            "count": 1,
            "source": {
                "slot_type": {"container_id": "container"},
                "slot": slot,
                "stack_id": stack_id,
            },
            "destination": {
                "slot_type": {"container_id": "cursor"},
                "slot": 0,
                "stack_id": 0,
            },
        }
        return self._stack_request(action, self.next_request_id())

    def drop(self, slot: int, count: int, stack_id: int = 0) -> OutgoingRequest:
        """Drop a whole stack from the player inventory onto the ground."""
        if slot < 0 or count <= 0:
            raise ProtocolRequestError(
                protocol.ITEM_STACK_REQUEST, f"invalid drop of {count} from slot {slot}"
            )
        action = {
            "type_id": "drop",
            "count": count,
            "source": {
                "slot_type": {"container_id": self.container_for(slot)},
                "slot": slot,
                "stack_id": stack_id,
            },
            "randomly": False,
        }
        return self._stack_request(action, self.next_request_id())

    def container_for(self, slot: int) -> str:
        return "hotbar" if slot < self.hotbar_size else "inventory"

    def _stack_request(self, action: dict[str, Any], request_id: int) -> OutgoingRequest:
        return OutgoingRequest(
            protocol.ITEM_STACK_REQUEST,
            {
                "requests": [
                    {
                        "request_id": request_id,
                        "actions": [action],
                        "custom_names": [],
                        "cause": -1,
                    }
                ]
            },
        )

    # ------------------------------------------------------------------
    # Avatar state
    # ------------------------------------------------------------------

    def auth_input(
        self,
        position: Vec3,
        rotation: Rotation,
        *,
        sneaking: bool = False,
        ascend: bool = False,
        nudge: bool = False,
    ) -> OutgoingRequest:
        """Periodic avatar-state update. Consumes one tick."""
        flags = (FLAG_SNEAKING if sneaking else 0) | (FLAG_ASCEND if ascend else 0)
        return OutgoingRequest(
            protocol.PLAYER_AUTH_INPUT,
            {
                "pitch": rotation.pitch,
                "yaw": rotation.yaw,
                "position": position.model_dump(),
                "move_vector": {"x": 0.01 if nudge else 0, "z": 0},
                "head_yaw": rotation.yaw,
                "input_data": {"_value": flags},
                "input_mode": "mouse",
                "play_mode": "screen",
                "interaction_model": "touch",
                "interact_rotation": _zero2(),
                "tick": self.next_tick(),
                "delta": {"x": 0, "y": 0, "z": 0},
                "analogue_move_vector": _zero2(),
                "camera_orientation": {"x": 0, "y": 0, "z": 0},
                "raw_move_vector": _zero2(),
            },
        )

    # ------------------------------------------------------------------
    # Text and commands
    # ------------------------------------------------------------------

    def chat(self, message: str, source_name: str) -> OutgoingRequest:
        return OutgoingRequest(
            protocol.TEXT,
            {
                "type": "chat",
                "needs_translation": False,
                "source_name": source_name,
                "xuid": "",
                "platform_chat_id": "",
                "message": message,
                "category": "authored",
                "chat": "",
                "whisper": "",
                "announcement": "",
                "has_filtered_message": False,
            },
        )

    def command(self, command: str, entity_id: int | None) -> OutgoingRequest:
        """Slash command sent as a command request, not as chat."""
        return OutgoingRequest(
            protocol.COMMAND_REQUEST,
            {
                "command": command,
                "origin": {
                    "type": "player",
                    "uuid": _NULL_UUID,
                    "request_id": "",
                    "player_entity_id": entity_id or 0,
                },
                "internal": False,
                "version": _COMMAND_VERSION,
            },
        )

    # ------------------------------------------------------------------
    # Windows and held items
    # ------------------------------------------------------------------

    def close_container(self, window_id: WindowId) -> OutgoingRequest:
        return OutgoingRequest(
            protocol.CONTAINER_CLOSE,
            {"window_id": window_id, "window_type": "none", "server": False},
        )

    def open_inventory(self, entity_id: int | None) -> OutgoingRequest:
        return OutgoingRequest(
            protocol.INTERACT,
            {"action_id": "open_inventory", "target_entity_id": entity_id or 0},
        )

    def equip(self, entity_id: int | None, slot: int, item: ItemStack | None) -> OutgoingRequest:
        held = item or ItemStack.empty()
        return OutgoingRequest(
            protocol.MOB_EQUIPMENT,
            {
                "runtime_entity_id": entity_id,
                "item": held.to_wire(),
                "slot": slot,
                "selected_slot": slot,
                "window_id": "inventory",
            },
        )

    def use_item(self, hotbar_slot: int, item: ItemStack | None, position: Vec3) -> OutgoingRequest:
        held = item or ItemStack.empty()
        return OutgoingRequest(
            protocol.INVENTORY_TRANSACTION,
            {
                "transaction": {
                    "legacy": {"legacy_request_id": 0},
                    "transaction_type": "item_use",
                    "actions": [],
                    "transaction_data": {
                        "action_type": "interact",
                        "hotbar_slot": hotbar_slot,
                        "held_item": held.to_wire(),
                        "player_pos": position.model_dump(),
                        "click_pos": {"x": 0, "y": 0, "z": 0},
                        "block_runtime_id": 0,
                        "client_prediction": "failure",
                    },
                }
            },
        )

    def legacy_click(self, window_id: WindowId, slot: int, item: ItemStack) -> OutgoingRequest:
        """Move a container slot onto the cursor with a legacy transaction."""
        if item.is_empty:
            raise ProtocolRequestError(protocol.INVENTORY_TRANSACTION, f"slot {slot} is empty")
        empty = ItemStack.empty().to_wire()
        take = {
            "source_type": 0,
            "inventory_id": window_id,
            "slot": slot,
            "old_item": item.to_wire(),
            "new_item": empty,
        }
        place = {
            "source_type": 0,
            "inventory_id": self.cursor_window_id,
            "slot": 0,
            "old_item": empty,
            "new_item": item.to_wire(),
        }
        return OutgoingRequest(
            protocol.INVENTORY_TRANSACTION,
            {
                "transaction": {
                    "legacy": {"legacy_request_id": 0},
                    "transaction_type": "normal",
                    "actions": [take, place],
                    "transaction_data": None,
                }
            },
        )
