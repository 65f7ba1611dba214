"""Local mirror of server-side windows and the player inventory.

The server streams full-content replacements and single-slot updates for
any window id, sometimes before (or without) opening the window, and
reuses ids for unrelated menus. The mirror applies updates strictly in
arrival order and never trusts them to be consistent: an update that does
not fit is ignored rather than raised.
"""

import logging
from collections.abc import Iterator, Sequence

from shopbot.bot.models import FocusedWindow, ItemStack, SlotListing, WindowId, window_key

logger = logging.getLogger(__name__)

Slots = list[ItemStack | None]


class WindowContents:
    """Slots for one window id, plus the length fixed by the last full update."""

    __slots__ = ("window_id", "slots", "full_length")

    def __init__(self, window_id: WindowId) -> None:
        self.window_id = window_id
        self.slots: Slots = []
        self.full_length: int | None = None


class WindowMirror:
    """Per-session mirror of every window the server has told us about.

    Args:
        player_window_ids: Ids (string form) of windows that belong to the
            player rather than to a server menu.
        inventory_window_ids: Ids (string form) of the player's main inventory.
        max_slots: Slot updates at or above this index are ignored.
    """

    def __init__(
        self,
        player_window_ids: Sequence[str] = ("inventory", "0"),
        inventory_window_ids: Sequence[str] = ("inventory", "0"),
        max_slots: int = 256,
    ) -> None:
        self.max_slots = max_slots
        self._player_ids = frozenset(player_window_ids)
        self._inventory_ids = frozenset(inventory_window_ids)
        self._windows: dict[str, WindowContents] = {}
        self.inventory: Slots = []
        self.focused: FocusedWindow | None = None

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def is_player_window(self, window_id: WindowId) -> bool:
        return window_key(window_id) in self._player_ids

    def is_inventory(self, window_id: WindowId) -> bool:
        return window_key(window_id) in self._inventory_ids

    def is_focused(self, window_id: WindowId) -> bool:
        return self.focused is not None and window_key(self.focused.id) == window_key(window_id)

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def apply_full(self, window_id: WindowId, items: Sequence[ItemStack | None]) -> None:
        """Replace the window's slots. The new length becomes authoritative."""
        contents = self._contents(window_id)
        contents.window_id = window_id
        contents.slots = list(items)
        contents.full_length = len(contents.slots)
        if self.is_inventory(window_id):
            self.inventory = list(items)

    def apply_slot(self, window_id: WindowId, index: int, item: ItemStack | None) -> bool:
        """Set one slot. Returns False when the update was ignored."""
        if index < 0 or index >= self.max_slots:
            logger.debug("Ignoring slot %d for window %s", index, window_id)
            return False
        contents = self._contents(window_id)
        if contents.full_length is not None and index >= contents.full_length:
            logger.debug(
                "Ignoring slot %d beyond length %d of window %s",
                index, contents.full_length, window_id,
            )
            return False
        if index >= len(contents.slots):
            contents.slots.extend([None] * (index + 1 - len(contents.slots)))
        contents.slots[index] = item
        if self.is_inventory(window_id) and index < len(self.inventory):
            self.inventory[index] = item
        return True

    def open_window(self, window_id: WindowId, window_type: WindowId | None = None) -> None:
        self.focused = FocusedWindow(id=window_id, type=window_type)

    def close_window(self, window_id: WindowId) -> bool:
        """Clear focus if it matches. Returns True when focus was cleared."""
        if not self.is_focused(window_id):
            return False
        self.focused = None
        return True

    def evict(self, window_id: WindowId) -> None:
        """Forget a window's contents entirely."""
        self._windows.pop(window_key(window_id), None)
        self.close_window(window_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def items(self, window_id: WindowId) -> Slots:
        contents = self._windows.get(window_key(window_id))
        return contents.slots if contents is not None else []

    def window_id_for(self, window_id: WindowId) -> WindowId:
        """The id as the server last sent it (``"5"`` and ``5`` are one window)."""
        contents = self._windows.get(window_key(window_id))
        return contents.window_id if contents is not None else window_id

    def windows(self) -> Iterator[tuple[WindowId, Slots]]:
        """All mirrored windows in the order they were first seen."""
        for contents in self._windows.values():
            yield contents.window_id, contents.slots

    def __contains__(self, window_id: object) -> bool:
        return window_key(window_id) in self._windows  # type: ignore[arg-type]

    def inventory_listing(self) -> list[SlotListing]:
        return _listing(self.inventory)

    def container_listing(self) -> list[SlotListing]:
        if self.focused is None:
            return []
        return _listing(self.items(self.focused.id))

    def _contents(self, window_id: WindowId) -> WindowContents:
        key = window_key(window_id)
        contents = self._windows.get(key)
        if contents is None:
            contents = self._windows[key] = WindowContents(window_id)
        return contents


def _listing(slots: Slots) -> list[SlotListing]:
    return [
        SlotListing(slot=index, id=item.network_id, count=item.count, metadata=item.metadata)
        for index, item in enumerate(slots)
        if item is not None and not item.is_empty
    ]
