"""One bot session: state, event wiring and player-facing operations.

A ``BotSession`` exclusively owns its avatar state, window mirror,
workflows, connection supervisor, scheduler and protocol-client handle.
Sessions share nothing, so a fleet can run any number of them on one
event loop.

Usage:
    session = BotSession("bot1", factory=make_client)
    await session.join()
    session.start_auto_buy()
    ...
    session.leave()
"""

import logging
from collections.abc import Callable
from functools import partial
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, ValidationError

from shopbot.bot import protocol
from shopbot.bot.actions import OutgoingActionBuilder, OutgoingRequest
from shopbot.bot.afk import AfkMenuFlow
from shopbot.bot.config import Settings, settings as default_settings
from shopbot.bot.connection import ConnectionSupervisor
from shopbot.bot.errors import ProtocolRequestError
from shopbot.bot.models import (
    ContainerCloseEvent,
    ContainerOpenEvent,
    CorrectMoveEvent,
    ErrorEvent,
    InventoryContentEvent,
    InventorySlotEvent,
    ItemStack,
    KickEvent,
    MobEquipmentEvent,
    MovePlayerEvent,
    RespawnEvent,
    Rotation,
    SessionStatus,
    SlotListing,
    StartGameEvent,
    TextEvent,
    Vec3,
    WindowId,
)
from shopbot.bot.protocol import ClientFactory, ProtocolClient
from shopbot.bot.text import TextClassifier, TextKind
from shopbot.bot.windows import WindowMirror
from shopbot.bot.workflow import AutoBuyWorkflow
from shopbot.lib.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

POSITION_TASK = "position"
ANTI_AFK_TASK = "anti_afk"
DROP_TASK_PREFIX = "drop."

_DEBUG_POSITION_UPDATES = 3


class AvatarState(BaseModel):
    """Where the server says we are."""

    position: Vec3 = Field(default_factory=lambda: Vec3(y=64))
    rotation: Rotation = Field(default_factory=Rotation)
    runtime_entity_id: int | None = None
    held_slot: int = 0
    position_updates_sent: int = 0


class DropTarget(NamedTuple):
    slot: int
    count: int
    stack_id: int


class BotSession:
    """A single bot connected to one server.

    Args:
        name: Account name; also the prefix of every log line.
        factory: Creates protocol clients (see ``shopbot.bot.protocol``).
        settings: Defaults to the module-level settings singleton.
    """

    def __init__(
        self,
        name: str,
        factory: ClientFactory,
        settings: Settings | None = None,
    ) -> None:
        self.name = name
        self.settings = settings or default_settings
        self.scheduler = TaskScheduler(owner=name)
        self.classifier = TextClassifier(self.settings.text_rules)
        self.sneaking = False
        self.anti_afk_enabled = False
        self._reset_world()
        self.connection = ConnectionSupervisor(
            name,
            self.settings,
            factory,
            self.scheduler,
            on_client=self._subscribe,
            on_teardown=self._teardown,
        )
        self.workflow = AutoBuyWorkflow(self)
        self.afk_flow = AfkMenuFlow(self)

    def _reset_world(self) -> None:
        layout = self.settings.layout
        self.avatar = AvatarState()
        self.mirror = WindowMirror(
            layout.player_window_ids, layout.inventory_window_ids, max_slots=layout.max_window_slots
        )
        self.actions = OutgoingActionBuilder(layout.cursor_window_id, layout.hotbar_size)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def client(self) -> ProtocolClient | None:
        return self.connection.client

    @property
    def connected(self) -> bool:
        return self.connection.connected

    async def join(self) -> None:
        await self.connection.start()

    def leave(self) -> None:
        self.connection.stop()

    def _teardown(self) -> None:
        self.stop_anti_afk()
        self.workflow.stop("Session stopped. Auto-buy cancelled.")

    def require_connection(self, action: str) -> bool:
        if not self.connected or self.client is None:
            logger.warning("[%s] Not connected, cannot %s", self.name, action)
            return False
        return True

    # ------------------------------------------------------------------
    # Event wiring
    # ------------------------------------------------------------------

    def _subscribe(self, client: ProtocolClient) -> None:
        """Attach handlers to a fresh handle. World state starts over."""
        self.scheduler.cancel(POSITION_TASK)
        self.workflow.reset()
        self._reset_world()

        handlers: dict[str, tuple[Callable[[Any], Any] | None, Callable[[Any], None]]] = {
            protocol.START_GAME: (StartGameEvent.model_validate, self._on_start_game),
            protocol.RESPAWN: (RespawnEvent.model_validate, self._on_respawn),
            protocol.SPAWN: (None, self._on_spawn),
            protocol.MOVE_PLAYER: (MovePlayerEvent.model_validate, self._on_move_player),
            protocol.MOB_EQUIPMENT: (MobEquipmentEvent.model_validate, self._on_mob_equipment),
            protocol.CORRECT_MOVE: (CorrectMoveEvent.model_validate, self._on_correct_move),
            protocol.TEXT: (TextEvent.model_validate, self._on_text),
            protocol.CONTAINER_OPEN: (ContainerOpenEvent.model_validate, self._on_container_open),
            protocol.CONTAINER_CLOSE: (ContainerCloseEvent.model_validate, self._on_container_close),
            protocol.INVENTORY_CONTENT: (InventoryContentEvent.model_validate, self._on_inventory_content),
            protocol.INVENTORY_SLOT: (InventorySlotEvent.model_validate, self._on_inventory_slot),
            protocol.KICK: (KickEvent.model_validate, self._on_kick),
            protocol.ERROR: (ErrorEvent.from_payload, self._on_error),
            protocol.CLOSE: (None, self._on_close),
        }
        for event, (parse, handler) in handlers.items():
            client.on(event, self._bind(client, event, parse, handler))

    def _bind(
        self,
        client: ProtocolClient,
        event: str,
        parse: Callable[[Any], Any] | None,
        handler: Callable[[Any], None],
    ) -> Callable[..., None]:
        def listener(payload: Any = None, *_: Any) -> None:
            if not self.connection.owns(client):
                return
            try:
                record = parse(payload if payload is not None else {}) if parse else payload
            except ValidationError as e:
                logger.warning("[%s] Dropping malformed %s event: %s", self.name, event, e)
                return
            try:
                handler(record)
            except Exception:
                logger.exception("[%s] Unhandled error in %s handler", self.name, event)

        return listener

    # ------------------------------------------------------------------
    # Avatar events
    # ------------------------------------------------------------------

    def _on_start_game(self, event: StartGameEvent) -> None:
        self.avatar.position = event.position
        self.avatar.runtime_entity_id = event.runtime_entity_id
        pos = event.position
        logger.info("[%s] start_game received:", self.name)
        logger.info("[%s]   position: %.1f, %.1f, %.1f", self.name, pos.x, pos.y, pos.z)
        logger.info("[%s]   runtime_entity_id: %s", self.name, event.runtime_entity_id)

    def _on_respawn(self, event: RespawnEvent) -> None:
        if not event.position:
            return
        current = self.avatar.position.model_dump()
        self.avatar.position = Vec3(
            **{
                axis: value if (value := event.position.get(axis)) is not None else current[axis]
                for axis in ("x", "y", "z")
            }
        )
        pos = self.avatar.position
        logger.info("[%s] respawn position: %.1f, %.1f, %.1f", self.name, pos.x, pos.y, pos.z)

    def _on_spawn(self, _: Any) -> None:
        logger.info("[%s] Spawned in world!", self.name)
        self.connection.mark_connected()
        self.start_position_loop()

    def _on_move_player(self, event: MovePlayerEvent) -> None:
        if event.runtime_id != self.avatar.runtime_entity_id:
            return
        self.avatar.position = event.position
        self.avatar.rotation = Rotation(pitch=event.pitch or 0, yaw=event.yaw or 0)

    def _on_mob_equipment(self, event: MobEquipmentEvent) -> None:
        if event.runtime_entity_id == self.avatar.runtime_entity_id:
            self.avatar.held_slot = event.selected_slot

    def _on_correct_move(self, event: CorrectMoveEvent) -> None:
        if event.position is not None:
            self.avatar.position = event.position

    # ------------------------------------------------------------------
    # Text
    # ------------------------------------------------------------------

    def _on_text(self, event: TextEvent) -> None:
        kind = self.classifier.classify(
            event.message,
            event.type,
            sender=event.sender,
            own_name=self.name,
            workflow_active=self.workflow.active,
        )
        if kind == TextKind.UNCLASSIFIED:
            return
        if kind == TextKind.PLAYER_CHAT:
            logger.info("[%s] <%s> %s", self.name, event.sender, event.message)
            return

        logger.info("[%s] [System] %s", self.name, event.message)
        if kind == TextKind.EMERGENCY_BROADCAST:
            self.connection.emergency_reconnect()
        elif kind in (TextKind.PURCHASE_SUCCESS, TextKind.OUT_OF_FUNDS):
            self.workflow.on_text(kind)

    # ------------------------------------------------------------------
    # Window events
    # ------------------------------------------------------------------

    def _on_container_open(self, event: ContainerOpenEvent) -> None:
        logger.info("[%s] Container opened: ID %s, Type %s", self.name, event.window_id, event.window_type)
        self.mirror.open_window(event.window_id, event.window_type)
        self.workflow.on_window_open(event.window_id)

    def _on_container_close(self, event: ContainerCloseEvent) -> None:
        if self.mirror.close_window(event.window_id):
            logger.info("[%s] Container closed: ID %s (server: %s)", self.name, event.window_id, event.server)
        self.workflow.on_window_close(event.window_id)

        # The server will not open the next GUI until we acknowledge its close.
        if event.server:
            request = self.actions.close_container(event.window_id)
            request.params["window_type"] = event.window_type or "none"
            if self._send(lambda: request):
                logger.info(
                    "[%s] Responded to server-initiated container_close for window %s",
                    self.name, event.window_id,
                )

    def _on_inventory_content(self, event: InventoryContentEvent) -> None:
        self.mirror.apply_full(event.window_id, event.input)
        if self.mirror.is_focused(event.window_id) and not self.mirror.is_inventory(event.window_id):
            logger.info("[%s] Received container content (%d items)", self.name, len(event.input))
        # Some servers send contents before, or without, opening the window.
        if not self.mirror.is_player_window(event.window_id):
            self.workflow.on_window_update(event.window_id)

    def _on_inventory_slot(self, event: InventorySlotEvent) -> None:
        applied = self.mirror.apply_slot(event.window_id, event.slot, event.item)
        if applied and not self.mirror.is_player_window(event.window_id):
            self.workflow.on_window_update(event.window_id)

    # ------------------------------------------------------------------
    # Connection events
    # ------------------------------------------------------------------

    def _on_kick(self, event: KickEvent) -> None:
        self.stop_position_loop()
        self.connection.handle_kick(event.message)

    def _on_close(self, _: Any) -> None:
        self.stop_position_loop()
        self.connection.handle_close()

    def _on_error(self, event: ErrorEvent) -> None:
        self.connection.handle_error(event)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _send(self, build: Callable[[], OutgoingRequest]) -> bool:
        """Build and submit one request. Failures are logged, never retried here."""
        client = self.client
        if client is None:
            return False
        try:
            request = build()
            try:
                client.queue(request.kind, request.params)
            except Exception as e:
                raise ProtocolRequestError(request.kind, str(e)) from e
        except ProtocolRequestError as e:
            logger.error("[%s] %s", self.name, e)
            return False
        return True

    def send_command(self, command: str) -> bool:
        if not self.connected:
            return False
        sent = self._send(partial(self.actions.command, command, self.avatar.runtime_entity_id))
        if sent:
            logger.info("[%s] Sent %s command via command_request", self.name, command)
        return sent

    def click_slot(self, window_id: WindowId, slot: int) -> bool:
        """Take one item from a container slot to the cursor."""
        if not self.connected:
            return False
        items = self.mirror.items(window_id)
        item = items[slot] if 0 <= slot < len(items) else None
        stack_id = item.stack_id if item is not None else 0
        sent = self._send(partial(self.actions.take_to_cursor, slot, stack_id))
        if sent:
            logger.info(
                "[%s] Sent item_stack_request for window ID %s, slot %d (stack_id: %d)",
                self.name, window_id, slot, stack_id,
            )
        return sent

    def close_window(self, window_id: WindowId) -> bool:
        sent = self._send(partial(self.actions.close_container, window_id))
        self.mirror.close_window(window_id)
        return sent

    def close_focused_window(self) -> bool:
        focused = self.mirror.focused
        if focused is None:
            return False
        return self.close_window(focused.id)

    # ------------------------------------------------------------------
    # Avatar updates
    # ------------------------------------------------------------------

    def start_position_loop(self) -> None:
        if self.scheduler.is_pending(POSITION_TASK):
            return
        self.scheduler.call_every(
            POSITION_TASK, self.settings.position_interval_seconds, self._send_position_update
        )

    def stop_position_loop(self) -> None:
        self.scheduler.cancel(POSITION_TASK)

    def _send_position_update(self) -> None:
        if not self.connected or self.client is None:
            return
        avatar = self.avatar
        if avatar.position_updates_sent < _DEBUG_POSITION_UPDATES:
            pos = avatar.position
            logger.debug(
                "[%s] Sending position update #%d: pos=(%.1f, %.1f, %.1f), tick=%d",
                self.name, avatar.position_updates_sent + 1, pos.x, pos.y, pos.z, self.actions.tick,
            )
        build = partial(
            self.actions.auth_input, avatar.position, avatar.rotation, sneaking=self.sneaking
        )
        if self._send(build):
            avatar.position_updates_sent += 1

    def start_anti_afk(self) -> None:
        if self.anti_afk_enabled:
            logger.info("[%s] Anti-AFK already enabled", self.name)
            return
        self.anti_afk_enabled = True
        logger.info("[%s] Anti-AFK enabled", self.name)
        self.scheduler.call_every(
            ANTI_AFK_TASK, self.settings.anti_afk_interval_seconds, self._send_anti_afk
        )

    def stop_anti_afk(self) -> None:
        if not self.anti_afk_enabled:
            return
        self.anti_afk_enabled = False
        self.scheduler.cancel(ANTI_AFK_TASK)
        logger.info("[%s] Anti-AFK disabled", self.name)

    def toggle_anti_afk(self) -> None:
        if self.anti_afk_enabled:
            self.stop_anti_afk()
        else:
            self.start_anti_afk()

    def _send_anti_afk(self) -> None:
        if not self.connected or self.client is None:
            return
        # A small jump plus a tiny move keeps the server from flagging us idle.
        self._send(
            partial(
                self.actions.auth_input,
                self.avatar.position,
                self.avatar.rotation,
                sneaking=self.sneaking,
                ascend=True,
                nudge=True,
            )
        )

    # ------------------------------------------------------------------
    # Player operations
    # ------------------------------------------------------------------

    def chat(self, message: str) -> bool:
        if not self.require_connection("send chat"):
            return False
        sent = self._send(partial(self.actions.chat, message, self.name))
        if sent:
            logger.info("[%s] Sent: %s", self.name, message)
        return sent

    def toggle_sneak(self) -> bool:
        """Flip the sneak flag; the position loop carries it on the next update."""
        if not self.require_connection("toggle sneak"):
            return self.sneaking
        self.sneaking = not self.sneaking
        logger.info("[%s] Sneak %s", self.name, "enabled" if self.sneaking else "disabled")
        return self.sneaking

    def select_slot(self, slot: int) -> bool:
        if not self.connected or self.client is None:
            return False
        if not 0 <= slot < self.settings.layout.hotbar_size:
            logger.warning("[%s] Invalid slot (must be 0-8 for hotbar)", self.name)
            return False
        inventory = self.mirror.inventory
        item = inventory[slot] if slot < len(inventory) else None
        sent = self._send(partial(self.actions.equip, self.avatar.runtime_entity_id, slot, item))
        if sent:
            self.avatar.held_slot = slot
            logger.info("[%s] Selected slot %d", self.name, slot)
        return sent

    def use_item(self) -> bool:
        if not self.connected or self.client is None:
            return False
        inventory = self.mirror.inventory
        slot = self.avatar.held_slot
        item = inventory[slot] if slot < len(inventory) else None
        sent = self._send(partial(self.actions.use_item, slot, item, self.avatar.position))
        if sent:
            logger.info("[%s] Used item", self.name)
        return sent

    def click_container_slot(self, slot: int) -> bool:
        """Legacy click on the focused window, moving the slot to the cursor."""
        if not self.connected or self.client is None:
            return False
        focused = self.mirror.focused
        if focused is None:
            logger.warning("[%s] No container open to click", self.name)
            return False
        items = self.mirror.items(focused.id)
        item = items[slot] if 0 <= slot < len(items) else None
        if item is None or item.is_empty:
            logger.warning("[%s] Slot %d is empty", self.name, slot)
            return False
        sent = self._send(partial(self.actions.legacy_click, focused.id, slot, item))
        if sent:
            logger.info("[%s] Clicked slot %d in window %s", self.name, slot, focused.id)
        return sent

    def get_inventory(self) -> list[SlotListing]:
        items = self.mirror.inventory_listing()
        if not self.mirror.inventory:
            logger.info("[%s] Inventory is empty or not loaded yet", self.name)
        return items

    def get_container_items(self) -> list[SlotListing]:
        return self.mirror.container_listing()

    def start_auto_buy(self) -> bool:
        return self.workflow.start()

    def stop_auto_buy(self) -> None:
        self.workflow.stop()

    def afk(self) -> bool:
        return self.afk_flow.run()

    # ------------------------------------------------------------------
    # Dropping target items
    # ------------------------------------------------------------------

    def is_target_item(self, item: ItemStack | None) -> bool:
        if item is None or item.is_empty:
            return False
        layout = self.settings.layout
        if layout.target_item_keyword in item.searchable_text:
            return True
        return item.network_id == layout.target_item_id

    def collect_drop_targets(self) -> list[DropTarget]:
        targets = []
        for slot, item in enumerate(self.mirror.inventory):
            if item is None or not self.is_target_item(item) or item.count <= 0:
                continue
            targets.append(DropTarget(slot, item.count, item.stack_id))
        return targets

    def drop_target_items(self) -> bool:
        """Open the inventory, then drop every target stack one at a time."""
        if not self.require_connection("drop item"):
            return False
        self._send(partial(self.actions.open_inventory, self.avatar.runtime_entity_id))
        logger.info("[%s] Sent open_inventory interact to scan for Spawner items", self.name)
        # Give the server time to open or refresh the inventory before scanning.
        self.scheduler.call_later(
            DROP_TASK_PREFIX + "scan", self.settings.drop_open_delay_seconds, self._drop_scan
        )
        return True

    def _drop_scan(self) -> None:
        if not self.connected:
            return
        targets = self.collect_drop_targets()
        if not targets:
            logger.info("[%s] No Spawner item found in inventory", self.name)
            self._close_inventory()
            return

        total = sum(target.count for target in targets)
        logger.info(
            "[%s] [Drop] Found %d Spawner stack(s), total %d. Dropping now...",
            self.name, len(targets), total,
        )
        spacing = self.settings.drop_spacing_seconds
        # Spaced out so the server handles one drop at a time.
        for index, target in enumerate(targets):
            self.scheduler.call_later(
                f"{DROP_TASK_PREFIX}{index}", index * spacing, partial(self._drop_one, target)
            )
        self.scheduler.call_later(
            DROP_TASK_PREFIX + "close",
            len(targets) * spacing + self.settings.drop_close_padding_seconds,
            self._drop_close,
        )

    def _drop_one(self, target: DropTarget) -> None:
        if not self.connected:
            return
        build = partial(self.actions.drop, target.slot, target.count, target.stack_id)
        if self._send(build):
            logger.info(
                "[%s] [Drop] Sent drop for slot %d (%s) x%d, stack_id %d",
                self.name, target.slot, self.actions.container_for(target.slot),
                target.count, target.stack_id,
            )

    def _drop_close(self) -> None:
        if self.connected:
            self._close_inventory()

    def _close_inventory(self) -> None:
        if self._send(partial(self.actions.close_container, "inventory")):
            logger.info("[%s] Sent container_close for inventory", self.name)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self) -> SessionStatus:
        focused = self.mirror.focused
        return SessionStatus(
            name=self.name,
            connected=self.connected,
            sneaking=self.sneaking,
            anti_afk_enabled=self.anti_afk_enabled,
            workflow_active=self.workflow.active,
            workflow_stage=self.workflow.stage.name,
            reconnect_attempts=self.connection.state.reconnect_attempts,
            focused_window_id=focused.id if focused is not None else None,
            pending_tasks=self.scheduler.pending_names,
        )
