"""Typed records for everything crossing the protocol boundary.

Raw payloads are loosely typed and vary by server version (position may be
``player_position``, ``position`` or ``spawn_position``; display names sit
at one of two NBT depths). Each inbound event kind is validated into a
record here so that session and workflow code never touch raw dicts.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shopbot.bot.text import normalize

WindowId = int | str
"""Window ids are small integers or enum names such as ``"inventory"``."""


def window_key(window_id: WindowId | None) -> str:
    """Canonical form used to compare window ids."""
    return str(window_id)


def _dig(node: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


# =============================================================================
# ITEMS
# =============================================================================


class ItemStack(BaseModel):
    """One inventory or container slot.

    Unknown fields are kept so the item can be echoed back to the server
    unchanged in transactions.
    """

    model_config = ConfigDict(extra="allow")

    network_id: int = 0
    count: int = 0
    metadata: int = 0
    stack_id: int = 0
    block_runtime_id: int = 0
    extra: dict[str, Any] | None = None

    @property
    def is_empty(self) -> bool:
        return self.network_id == 0

    def _display(self) -> dict[str, Any] | None:
        return _dig(self.extra, "nbt", "value", "display", "value") or _dig(
            self.extra, "nbt", "nbt", "value", "display", "value"
        )

    def _fallback_name(self) -> str:
        extras = self.model_extra or {}
        for key in ("name", "custom_name", "display_name"):
            value = extras.get(key)
            if value:
                return str(value)
        return ""

    @property
    def display_name(self) -> str:
        """Normalized custom name, or the plain item name."""
        if self.is_empty:
            return ""
        name = _dig(self._display(), "Name", "value")
        return normalize(name or self._fallback_name())

    @property
    def lore(self) -> str:
        """Normalized lore lines joined by spaces."""
        if self.is_empty:
            return ""
        entries = _dig(self._display(), "Lore", "value", "value")
        if not isinstance(entries, list):
            return ""
        lines = []
        for entry in entries:
            raw = entry.get("value") if isinstance(entry, dict) else entry
            line = normalize(raw)
            if line:
                lines.append(line)
        return " ".join(lines)

    @property
    def searchable_text(self) -> str:
        """Name and lore together, for keyword matching."""
        return f"{self.display_name} {self.lore}".strip()

    def matches_keywords(self, keyword_groups: list[list[str]]) -> bool:
        """True if every keyword of at least one group appears in the text."""
        if self.is_empty:
            return False
        text = self.searchable_text
        return any(all(word in text for word in group) for group in keyword_groups)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    @classmethod
    def empty(cls) -> "ItemStack":
        return cls(extra={"name": "default", "params": {"nbt": {"version": 1}}})


def item_id(item: ItemStack | None) -> int:
    """Network id of a possibly-missing slot, 0 when absent."""
    return item.network_id if item is not None else 0


# =============================================================================
# AVATAR
# =============================================================================


class Vec3(BaseModel):
    model_config = ConfigDict(extra="ignore")

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class Rotation(BaseModel):
    pitch: float = 0.0
    yaw: float = 0.0


def _pick_position(data: dict[str, Any]) -> Any:
    for key in ("player_position", "position", "spawn_position"):
        if data.get(key):
            return data[key]
    return None


class StartGameEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    position: Vec3 = Field(default_factory=lambda: Vec3(y=64))
    runtime_entity_id: int | None = None

    @model_validator(mode="before")
    @classmethod
    def locate_position(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        pos = _pick_position(data)
        if pos is None:
            pos = {"x": data.get("x") or 0, "y": data.get("y") or 64, "z": data.get("z") or 0}
        elif isinstance(pos, dict):
            pos = {"x": pos.get("x") or 0, "y": pos.get("y") or 64, "z": pos.get("z") or 0}
        return {**data, "position": pos}


class RespawnEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    position: dict[str, float | None] | None = None

    @model_validator(mode="before")
    @classmethod
    def locate_position(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        return {"position": data.get("player_position") or data.get("position")}


class MovePlayerEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    runtime_id: int | None = None
    position: Vec3
    pitch: float | None = None
    yaw: float | None = None


class MobEquipmentEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    runtime_entity_id: int | None = None
    selected_slot: int = 0


class CorrectMoveEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    position: Vec3 | None = None


# =============================================================================
# TEXT AND LIFECYCLE
# =============================================================================


class TextEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    source_name: str | None = None
    message: str = ""

    @property
    def sender(self) -> str:
        return self.source_name or "Server"


class KickEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = ""


class ErrorEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> "ErrorEvent":
        if isinstance(payload, BaseException):
            return cls(message=str(payload))
        if isinstance(payload, dict):
            return cls.model_validate(payload)
        return cls(message=str(payload or ""))

    @property
    def is_read_error(self) -> bool:
        return "Read error" in self.message

    @property
    def is_ping_timeout(self) -> bool:
        return "Ping timed out" in self.message


# =============================================================================
# WINDOWS
# =============================================================================


class ContainerOpenEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    window_id: WindowId
    window_type: WindowId | None = None


class ContainerCloseEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    window_id: WindowId
    window_type: WindowId | None = None
    server: bool = False


class InventoryContentEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    window_id: WindowId
    input: list[ItemStack | None] = Field(default_factory=list)


class InventorySlotEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    window_id: WindowId
    slot: int
    item: ItemStack | None = None


class FocusedWindow(BaseModel):
    """The one window the server currently has open for us."""

    id: WindowId
    type: WindowId | None = None


class SlotListing(BaseModel):
    """A non-empty slot as reported by inventory queries."""

    slot: int
    id: int
    count: int
    metadata: int = 0


# =============================================================================
# STATUS
# =============================================================================


class SessionStatus(BaseModel):
    """Queryable status for the orchestration layer."""

    name: str
    connected: bool
    sneaking: bool
    anti_afk_enabled: bool
    workflow_active: bool
    workflow_stage: str
    reconnect_attempts: int
    focused_window_id: WindowId | None = None
    pending_tasks: list[str] = Field(default_factory=list)
