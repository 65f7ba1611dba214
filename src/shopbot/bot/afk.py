"""One-shot AFK menu flow.

Send the AFK command, poll the mirror for the AFK menu, click the best
entry, then close the window. A miss after the probe limit is only
logged; there is no retry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, NamedTuple

from shopbot.bot.config import MenuLayout
from shopbot.bot.models import WindowId
from shopbot.bot.windows import WindowMirror

if TYPE_CHECKING:
    from shopbot.bot.session import BotSession

logger = logging.getLogger(__name__)

PROBE_TASK = "afk.probe"
CLOSE_TASK = "afk.close"


class AfkTarget(NamedTuple):
    window_id: WindowId
    slot: int
    mode: str
    matches: int = 0


def find_afk_target(mirror: WindowMirror, layout: MenuLayout) -> AfkTarget | None:
    """Pick the AFK entry to click across all mirrored server windows.

    Prefers an entry not labelled "full", taking the window with the most
    AFK entries; then any AFK entry; then the known fallback slot.
    """
    best_open: AfkTarget | None = None
    best_any: AfkTarget | None = None

    for window_id, items in mirror.windows():
        if mirror.is_player_window(window_id) or not items:
            continue

        first_any: int | None = None
        first_open: int | None = None
        matches = 0
        text_matches = 0
        for slot, item in enumerate(items):
            if item is None or item.is_empty:
                continue
            text = item.searchable_text
            has_text = layout.afk_keyword in text
            if has_text:
                text_matches += 1
            if not has_text and item.network_id != layout.afk_item_id:
                continue
            matches += 1
            if first_any is None:
                first_any = slot
            if first_open is None and layout.afk_full_keyword not in text:
                first_open = slot

        # A random chest with a few of the marker block is not the AFK menu.
        if text_matches == 0 and matches < layout.afk_min_id_matches:
            continue

        if first_open is not None and (best_open is None or matches > best_open.matches):
            best_open = AfkTarget(window_id, first_open, "non-full AFK", matches)
        if first_any is not None and (best_any is None or matches > best_any.matches):
            best_any = AfkTarget(window_id, first_any, "fallback AFK", matches)

    if best_open is not None:
        return best_open
    if best_any is not None:
        return best_any

    if layout.afk_fallback_window not in mirror:
        return None
    fallback = mirror.items(layout.afk_fallback_window)
    slot = layout.afk_fallback_slot
    if slot < len(fallback) and fallback[slot] is not None and not fallback[slot].is_empty:
        return AfkTarget(
            mirror.window_id_for(layout.afk_fallback_window), slot, f"slot {slot} fallback"
        )
    return None


class AfkMenuFlow:
    """Runs the AFK menu selection for one session."""

    def __init__(self, session: BotSession) -> None:
        self.session = session
        self.settings = session.settings
        self.attempts = 0

    def run(self) -> bool:
        if not self.session.require_connection("use afk command"):
            return False
        logger.info("[%s] Sending %s and waiting for AFK GUI...", self.session.name, self.settings.afk_command)
        self.session.send_command(self.settings.afk_command)
        self.attempts = 0
        self.session.scheduler.call_later(
            PROBE_TASK, self.settings.afk_first_probe_seconds, self._probe
        )
        return True

    def _probe(self) -> None:
        if not self.session.connected:
            return
        self.attempts += 1
        target = find_afk_target(self.session.mirror, self.settings.layout)
        if target is None:
            if self.attempts < self.settings.afk_max_probes:
                self.session.scheduler.call_later(
                    PROBE_TASK, self.settings.afk_probe_interval_seconds, self._probe
                )
            else:
                logger.warning("[%s] [AFK] Could not find AFK option in open containers.", self.session.name)
            return

        logger.info(
            "[%s] [AFK] Clicking slot %d in window %s (%s)",
            self.session.name, target.slot, target.window_id, target.mode,
        )
        self.session.click_slot(target.window_id, target.slot)
        # Give the server time to process the selection before closing.
        self.session.scheduler.call_later(
            CLOSE_TASK, self.settings.afk_close_delay_seconds, lambda: self._close(target)
        )

    def _close(self, target: AfkTarget) -> None:
        if not self.session.connected:
            return
        self.session.close_window(target.window_id)
        logger.info("[%s] [AFK] Sent container_close for window %s", self.session.name, target.window_id)
        self.session.mirror.evict(target.window_id)
