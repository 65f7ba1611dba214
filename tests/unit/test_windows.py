"""Tests for the window mirror."""

import random

from shopbot.bot.models import ItemStack
from shopbot.bot.windows import WindowMirror


def stack(network_id: int, count: int = 1) -> ItemStack:
    return ItemStack(network_id=network_id, count=count)


def make_mirror() -> WindowMirror:
    return WindowMirror(
        player_window_ids=["inventory", "0", "armor", "124"],
        inventory_window_ids=["inventory", "0"],
    )


class TestFullReplace:
    def test_replaces_contents(self) -> None:
        mirror = make_mirror()
        mirror.apply_full(5, [stack(1), stack(2)])
        mirror.apply_full(5, [stack(3)])

        assert [i.network_id for i in mirror.items(5)] == [3]

    def test_inventory_view_follows_player_inventory(self) -> None:
        mirror = make_mirror()
        mirror.apply_full("inventory", [stack(7), stack(0)])

        assert [i.network_id for i in mirror.inventory] == [7, 0]

    def test_other_windows_leave_inventory_alone(self) -> None:
        mirror = make_mirror()
        mirror.apply_full(0, [stack(7)])
        mirror.apply_full(3, [stack(9)])

        assert [i.network_id for i in mirror.inventory] == [7]


class TestSlotUpdates:
    def test_sets_slot_within_length(self) -> None:
        mirror = make_mirror()
        mirror.apply_full(5, [stack(1), stack(2)])

        assert mirror.apply_slot(5, 1, stack(8))
        assert mirror.items(5)[1].network_id == 8

    def test_beyond_full_length_is_noop(self) -> None:
        mirror = make_mirror()
        mirror.apply_full(5, [stack(1), stack(2)])

        assert not mirror.apply_slot(5, 2, stack(8))
        assert not mirror.apply_slot(5, 40, stack(8))
        assert len(mirror.items(5)) == 2

    def test_negative_index_is_noop(self) -> None:
        mirror = make_mirror()
        assert not mirror.apply_slot(5, -1, stack(8))
        assert 5 not in mirror

    def test_huge_index_before_full_replace_is_noop(self) -> None:
        """An untrusted slot index cannot make the mirror allocate without bound."""
        mirror = make_mirror()

        assert not mirror.apply_slot(7, 50_000_000, stack(1))
        assert not mirror.apply_slot(7, 256, stack(1))
        assert mirror.items(7) == []

    def test_limit_is_configurable(self) -> None:
        mirror = WindowMirror(max_slots=10)

        assert mirror.apply_slot(7, 9, stack(1))
        assert not mirror.apply_slot(7, 10, stack(1))
        assert len(mirror.items(7)) == 10

    def test_grows_sparse_before_full_replace(self) -> None:
        mirror = make_mirror()
        mirror.apply_slot(7, 3, stack(4))

        items = mirror.items(7)
        assert len(items) == 4
        assert items[:3] == [None, None, None]
        assert items[3].network_id == 4

    def test_later_full_replace_changes_length(self) -> None:
        mirror = make_mirror()
        mirror.apply_full(5, [stack(1)])
        mirror.apply_full(5, [stack(1), stack(2), stack(3)])

        assert mirror.apply_slot(5, 2, stack(9))
        assert mirror.items(5)[2].network_id == 9

    def test_inventory_slot_mirrored(self) -> None:
        mirror = make_mirror()
        mirror.apply_full("inventory", [stack(0), stack(0)])
        mirror.apply_slot("inventory", 1, stack(52, count=3))

        assert mirror.inventory[1].count == 3

    def test_string_and_int_ids_are_one_window(self) -> None:
        mirror = make_mirror()
        mirror.apply_full(5, [stack(1)])
        mirror.apply_slot("5", 0, stack(2))

        assert mirror.items(5)[0].network_id == 2


def test_interleaved_updates_do_not_interfere() -> None:
    """Mixed updates across ids equal applying each id's updates alone."""
    rng = random.Random(7)
    updates = []
    for window_id in (3, 4, "first"):
        updates.append((window_id, "full", [stack(rng.randint(1, 9)) for _ in range(6)]))
        for _ in range(10):
            updates.append((window_id, "slot", (rng.randint(0, 8), stack(rng.randint(1, 9)))))

    def apply(mirror: WindowMirror, batch: list) -> None:
        for window_id, kind, data in batch:
            if kind == "full":
                mirror.apply_full(window_id, data)
            else:
                mirror.apply_slot(window_id, *data)

    # Keep per-id order but shuffle ids against each other.
    by_id: dict = {}
    for update in updates:
        by_id.setdefault(update[0], []).append(update)
    interleaved = []
    queues = [list(batch) for batch in by_id.values()]
    while any(queues):
        queue = rng.choice([q for q in queues if q])
        interleaved.append(queue.pop(0))

    combined = make_mirror()
    apply(combined, interleaved)

    for window_id, batch in by_id.items():
        alone = make_mirror()
        apply(alone, batch)
        assert combined.items(window_id) == alone.items(window_id)


class TestFocus:
    def test_open_and_matching_close(self) -> None:
        mirror = make_mirror()
        mirror.open_window(5, "container")

        assert mirror.is_focused(5)
        assert not mirror.close_window(6)
        assert mirror.focused is not None
        assert mirror.close_window(5)
        assert mirror.focused is None

    def test_focus_changes_keep_contents(self) -> None:
        mirror = make_mirror()
        mirror.apply_full(5, [stack(1)])
        mirror.open_window(5)
        mirror.open_window(6)
        mirror.close_window(6)

        assert mirror.items(5)[0].network_id == 1

    def test_evict_removes_contents_and_focus(self) -> None:
        mirror = make_mirror()
        mirror.apply_full("first", [stack(1)])
        mirror.open_window("first")
        mirror.evict("first")

        assert "first" not in mirror
        assert mirror.focused is None

    def test_player_windows(self) -> None:
        mirror = make_mirror()
        assert mirror.is_player_window(0)
        assert mirror.is_player_window("armor")
        assert not mirror.is_player_window(5)


class TestListings:
    def test_inventory_listing_skips_empty(self) -> None:
        mirror = make_mirror()
        mirror.apply_full("inventory", [stack(0), stack(52, count=2), None])

        listing = mirror.inventory_listing()
        assert len(listing) == 1
        assert listing[0].slot == 1
        assert listing[0].count == 2

    def test_container_listing_uses_focused_window(self) -> None:
        mirror = make_mirror()
        mirror.apply_full(5, [stack(3)])
        assert mirror.container_listing() == []

        mirror.open_window(5)
        assert [entry.id for entry in mirror.container_listing()] == [3]
