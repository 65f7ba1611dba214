"""Seam between the session engine and the protocol client.

The wire codec and transport live outside this package. A protocol client
emits named events carrying decoded payload dicts and accepts outbound
requests as ``queue(kind, params)``. Sessions get a fresh client from a
factory on every (re)connect.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

EventHandler = Callable[..., None]


class ProtocolClient(Protocol):
    """What the engine needs from a connected protocol client."""

    def on(self, event: str, handler: EventHandler) -> None:
        """Subscribe ``handler`` to the named event."""
        ...

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Drop handlers for one event, or for all events."""
        ...

    def queue(self, kind: str, params: dict[str, Any]) -> None:
        """Submit an outbound request."""
        ...

    def disconnect(self, reason: str = "") -> None:
        """Close the connection. A ``close`` event follows."""
        ...


class DeviceCode(BaseModel):
    """Device-code login prompt shown on first online login."""

    model_config = ConfigDict(extra="ignore")

    verification_uri: str = ""
    user_code: str = ""


class ClientOptions(BaseModel):
    """Everything a factory needs to open a connection for one bot."""

    host: str
    port: int
    username: str
    offline: bool = False
    profiles_folder: Path
    on_msa_code: Callable[[DeviceCode], None] | None = None


ClientFactory = Callable[[ClientOptions], ProtocolClient]


# Inbound event names
START_GAME = "start_game"
RESPAWN = "respawn"
SPAWN = "spawn"
MOVE_PLAYER = "move_player"
MOB_EQUIPMENT = "mob_equipment"
CORRECT_MOVE = "correct_player_move_prediction"
TEXT = "text"
CONTAINER_OPEN = "container_open"
CONTAINER_CLOSE = "container_close"
INVENTORY_CONTENT = "inventory_content"
INVENTORY_SLOT = "inventory_slot"
KICK = "kick"
ERROR = "error"
CLOSE = "close"

# Outbound request kinds
ITEM_STACK_REQUEST = "item_stack_request"
INVENTORY_TRANSACTION = "inventory_transaction"
PLAYER_AUTH_INPUT = "player_auth_input"
COMMAND_REQUEST = "command_request"
INTERACT = "interact"
