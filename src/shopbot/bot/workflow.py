"""Auto-buy workflow: navigate the shop menus and buy the target item on repeat.

The server never confirms that a click did anything. Progress is inferred
from whichever window shows up next and from system text, both of which
can arrive late, twice, or under a reused window id. Each content update
for a server menu is run through an ordered list of strategies:

1. Signature: fixed slot contents that identify the main menu, the
   sub menu or the confirm dialog regardless of the current stage.
2. Keywords: name and lore text expected at the current stage.
3. Fallback: a fixed slot for the current stage.

The first strategy with an opinion decides the click and the next stage.
A window id is clicked at most once per open lifetime, and a hard cap on
confirm clicks stops the loop if the stopping text never arrives.

Stages::

    AWAITING_MAIN_MENU -> AWAITING_SUB_MENU -> AWAITING_CONFIRM -> AWAITING_RESULT
                              ^                                          |
                              +---------- purchase success text ---------+
"""

from __future__ import annotations

import logging
from enum import IntEnum
from typing import TYPE_CHECKING, NamedTuple, Protocol

from pydantic import BaseModel, Field

from shopbot.bot.config import MenuLayout
from shopbot.bot.errors import WorkflowSafetyStop
from shopbot.bot.models import ItemStack, WindowId, item_id, window_key
from shopbot.bot.text import TextKind

if TYPE_CHECKING:
    from shopbot.bot.session import BotSession

logger = logging.getLogger(__name__)

MENU_OPEN_TASK = "autobuy.menu_open"
MENU_RETRY_TASK = "autobuy.menu_retry"
SETTLE_TASK_PREFIX = "autobuy.settle:"


class Stage(IntEnum):
    INACTIVE = 0
    AWAITING_MAIN_MENU = 1
    AWAITING_SUB_MENU = 2
    AWAITING_CONFIRM = 3
    AWAITING_RESULT = 4


class MenuMatch(NamedTuple):
    """A strategy's decision: click ``slot`` and move to ``next_stage``."""

    slot: int
    label: str
    next_stage: Stage
    counts_attempt: bool = False


class MenuView:
    """Read-only helpers over one window's slots."""

    def __init__(self, items: list[ItemStack | None]) -> None:
        self.items = items

    def id_at(self, slot: int) -> int:
        if 0 <= slot < len(self.items):
            return item_id(self.items[slot])
        return 0

    def count_id(self, slots: list[int], network_id: int) -> int:
        return sum(1 for slot in slots if self.id_at(slot) == network_id)

    def find(self, keyword_groups: list[list[str]]) -> int | None:
        """First slot whose text contains every word of some group."""
        for slot, item in enumerate(self.items):
            if item is not None and item.matches_keywords(keyword_groups):
                return slot
        return None


# =============================================================================
# STRATEGIES
# =============================================================================


class MenuStrategy(Protocol):
    """Returns a confident match, or None for "no opinion"."""

    def match(self, view: MenuView, stage: Stage) -> MenuMatch | None: ...


class SignatureStrategy:
    """Recognizes menus by fixed slot contents, independent of stage."""

    def __init__(self, layout: MenuLayout) -> None:
        self.layout = layout

    def is_main_menu(self, view: MenuView) -> bool:
        layout = self.layout
        return view.id_at(layout.main_signature_slot) == layout.main_signature_item

    def is_sub_menu(self, view: MenuView) -> bool:
        layout = self.layout
        return (
            view.id_at(layout.sub_signature_slot) == layout.target_item_id
            and view.count_id(layout.sub_band_slots, layout.target_item_id)
            >= layout.sub_band_threshold
        )

    def is_confirm(self, view: MenuView) -> bool:
        layout = self.layout
        return (
            view.id_at(layout.sub_signature_slot) == layout.target_item_id
            and all(view.id_at(slot) != 0 for slot in layout.confirm_required_slots)
            and not self.is_sub_menu(view)
        )

    def match(self, view: MenuView, stage: Stage) -> MenuMatch | None:
        layout = self.layout
        if self.is_main_menu(view):
            return MenuMatch(
                layout.main_signature_slot, "Shard Shop (main menu)", Stage.AWAITING_SUB_MENU
            )
        if self.is_sub_menu(view):
            return MenuMatch(
                layout.sub_signature_slot, "Spawner Skeleton (shard menu)", Stage.AWAITING_CONFIRM
            )
        if self.is_confirm(view):
            return MenuMatch(
                layout.confirm_fallback_slot,
                "Confirm (confirm menu)",
                Stage.AWAITING_RESULT,
                counts_attempt=True,
            )
        return None


class KeywordStrategy:
    """Finds the entry expected at the current stage by its label.

    While waiting for a result, a visible shop page means the result text
    was missed; it recovers by clicking the target item again.
    """

    def __init__(self, layout: MenuLayout) -> None:
        self.layout = layout

    def match(self, view: MenuView, stage: Stage) -> MenuMatch | None:
        layout = self.layout
        if stage == Stage.AWAITING_MAIN_MENU:
            slot = view.find(layout.main_keywords)
            if slot is not None:
                return MenuMatch(slot, "Shard Shop", Stage.AWAITING_SUB_MENU)
        elif stage == Stage.AWAITING_SUB_MENU:
            slot = view.find(layout.sub_keywords)
            if slot is not None:
                return MenuMatch(slot, "Spawner Skeleton", Stage.AWAITING_CONFIRM)
        elif stage == Stage.AWAITING_CONFIRM:
            slot = view.find(layout.confirm_keywords)
            if slot is not None:
                return MenuMatch(slot, "Confirm", Stage.AWAITING_RESULT, counts_attempt=True)
        elif stage == Stage.AWAITING_RESULT:
            slot = view.find(layout.sub_keywords)
            if slot is not None:
                return MenuMatch(slot, "Spawner Skeleton (recover)", Stage.AWAITING_CONFIRM)
            if view.find(layout.main_keywords) is not None:
                return MenuMatch(
                    layout.sub_fallback_slot,
                    "Spawner Skeleton (recover fallback)",
                    Stage.AWAITING_CONFIRM,
                )
        return None


class FallbackStrategy:
    """Clicks the slot the entry usually occupies. No fallback while awaiting a result."""

    def __init__(self, layout: MenuLayout) -> None:
        self.layout = layout

    def match(self, view: MenuView, stage: Stage) -> MenuMatch | None:
        layout = self.layout
        if stage == Stage.AWAITING_MAIN_MENU:
            return MenuMatch(layout.main_fallback_slot, "Shard Shop (fallback)", Stage.AWAITING_SUB_MENU)
        if stage == Stage.AWAITING_SUB_MENU:
            return MenuMatch(
                layout.sub_fallback_slot, "Spawner Skeleton (fallback)", Stage.AWAITING_CONFIRM
            )
        if stage == Stage.AWAITING_CONFIRM:
            return MenuMatch(
                layout.confirm_fallback_slot,
                "Confirm (fallback)",
                Stage.AWAITING_RESULT,
                counts_attempt=True,
            )
        return None


def default_strategies(layout: MenuLayout) -> list[MenuStrategy]:
    return [SignatureStrategy(layout), KeywordStrategy(layout), FallbackStrategy(layout)]


def classify_menu(
    strategies: list[MenuStrategy], view: MenuView, stage: Stage
) -> MenuMatch | None:
    """Run strategies in order; the first confident match wins."""
    for strategy in strategies:
        found = strategy.match(view, stage)
        if found is not None:
            return found
    return None


# =============================================================================
# ENGINE
# =============================================================================


class WorkflowSession(BaseModel):
    """State of one auto-buy run."""

    active: bool = False
    stage: Stage = Stage.INACTIVE
    attempt_count: int = 0
    menu_retry_count: int = 0
    consumed_window_ids: set[str] = Field(default_factory=set)


class AutoBuyWorkflow:
    """Drives the shop menus for one session.

    Args:
        session: Owning session (mirror, scheduler, outbound requests).
        strategies: Menu classifiers in precedence order.
    """

    def __init__(
        self,
        session: BotSession,
        strategies: list[MenuStrategy] | None = None,
    ) -> None:
        self.session = session
        self.settings = session.settings
        self.strategies = strategies or default_strategies(self.settings.layout)
        self.state = WorkflowSession()

    @property
    def active(self) -> bool:
        return self.state.active

    @property
    def stage(self) -> Stage:
        return self.state.stage

    def _log(self, level: int, message: str, *args: object) -> None:
        logger.log(level, "[%s] [AutoBuy] " + message, self.session.name, *args)

    # ------------------------------------------------------------------
    # Start / stop
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Begin a run from the main menu. Returns False if not connected."""
        if not self.session.connected:
            self._log(logging.WARNING, "Cannot auto-buy: not connected to spawn")
            return False

        self._log(logging.INFO, "Starting Auto-Buy sequence for Skeleton Spawners...")
        self._cancel_tasks()
        self.state = WorkflowSession(active=True, stage=Stage.AWAITING_MAIN_MENU)

        scheduler = self.session.scheduler
        scheduler.call_every(
            MENU_RETRY_TASK, self.settings.menu_retry_interval_seconds, self._retry_menu_open
        )
        # Let earlier GUI and close packets settle before opening the shop.
        scheduler.call_later(
            MENU_OPEN_TASK, self.settings.menu_open_delay_seconds, self._open_menu
        )
        return True

    def stop(self, reason: str = "Auto-buy stopped.") -> None:
        """Stop from any state. Safe to call when already stopped."""
        was_active = self.state.active
        self._cancel_tasks()
        self.state = WorkflowSession()
        if was_active:
            self._log(logging.INFO, "%s", reason)

    def reset(self) -> None:
        """Forget the run without logging; used when the connection is replaced."""
        self._cancel_tasks()
        self.state = WorkflowSession()

    def _cancel_tasks(self) -> None:
        scheduler = self.session.scheduler
        scheduler.cancel(MENU_OPEN_TASK)
        scheduler.cancel(MENU_RETRY_TASK)
        scheduler.cancel_prefix(SETTLE_TASK_PREFIX)

    def _open_menu(self) -> None:
        if self.state.active:
            self.session.send_command(self.settings.menu_command)

    def _retry_menu_open(self) -> None:
        if not self.state.active or not self.session.connected:
            self.session.scheduler.cancel(MENU_RETRY_TASK)
            return
        if self.state.stage != Stage.AWAITING_MAIN_MENU:
            self.session.scheduler.cancel(MENU_RETRY_TASK)
            return

        self.state.menu_retry_count += 1
        limit = self.settings.menu_retry_max
        if self.state.menu_retry_count > limit:
            self.stop("Shop GUI did not open after retries. Stopping auto-buy.")
            return

        self._log(logging.INFO, "Waiting for shop GUI... retry %d/%d", self.state.menu_retry_count, limit)
        self.session.send_command(self.settings.menu_command)

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def on_window_open(self, window_id: WindowId) -> None:
        if not self.state.active:
            return
        key = window_key(window_id)
        # Ids are reused: a reopened id is a new window.
        self.state.consumed_window_ids.discard(key)
        self.session.scheduler.call_later(
            SETTLE_TASK_PREFIX + key,
            self.settings.window_settle_seconds,
            lambda: self.evaluate(window_id),
        )

    def on_window_close(self, window_id: WindowId) -> None:
        if self.state.active:
            self.state.consumed_window_ids.discard(window_key(window_id))

    def on_window_update(self, window_id: WindowId) -> None:
        """Content or slot update for a server menu."""
        if self.state.active and not self.session.mirror.is_player_window(window_id):
            self.evaluate(window_id)

    def on_text(self, kind: TextKind) -> None:
        if not self.state.active:
            return
        if kind == TextKind.PURCHASE_SUCCESS:
            self._log(logging.INFO, "Purchase successful! Continuing loop...")
            self.state.stage = Stage.AWAITING_SUB_MENU
            self.state.consumed_window_ids.clear()
            self.session.scheduler.cancel(MENU_RETRY_TASK)
        elif kind == TextKind.OUT_OF_FUNDS:
            self.stop("Out of shards. Stopping auto-buy.")
            self.session.close_focused_window()

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(self, window_id: WindowId) -> MenuMatch | None:
        """Decide whether and where to click in a window. Clicks at most once."""
        state = self.state
        if not state.active or state.stage == Stage.INACTIVE or not self.session.connected:
            return None
        key = window_key(window_id)
        if key in state.consumed_window_ids:
            return None
        items = self.session.mirror.items(window_id)
        if not items:
            return None

        found = classify_menu(self.strategies, MenuView(items), state.stage)
        if found is None:
            return None

        state.stage = found.next_stage
        if found.counts_attempt:
            state.attempt_count += 1

        try:
            self._check_attempt_cap()
        except WorkflowSafetyStop as e:
            self._log(logging.WARNING, "Safety stop: %s", e)
            self.stop("Safety stop: too many attempts without stopping condition.")
            return None

        state.consumed_window_ids.add(key)
        if state.stage != Stage.AWAITING_MAIN_MENU:
            self.session.scheduler.cancel(MENU_RETRY_TASK)
        self._log(logging.INFO, "Clicking slot %d (%s) in window %s", found.slot, found.label, window_id)
        self.session.click_slot(window_id, found.slot)
        return found

    def _check_attempt_cap(self) -> None:
        limit = self.settings.workflow_max_attempts
        if self.state.attempt_count > limit:
            raise WorkflowSafetyStop(self.state.attempt_count, limit)
