"""Connection lifecycle for one bot: connect, reconnect, emergency reconnect.

The supervisor owns the protocol-client handle and replaces it wholesale
on every connect. Reconnects use a fixed delay and an attempt cap; the
pending retry is the scheduler task named ``reconnect``, so at most one
retry is ever pending. A maintenance broadcast takes a separate path that
disconnects at once and comes back after a long fixed wait, ignoring the
cap.
"""

import logging
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel

from shopbot.bot.config import Settings
from shopbot.bot.errors import TransientNetworkError
from shopbot.bot.models import ErrorEvent
from shopbot.bot.protocol import ClientFactory, ClientOptions, DeviceCode, ProtocolClient
from shopbot.lib.retry import with_retry
from shopbot.lib.scheduler import TaskScheduler

logger = logging.getLogger(__name__)

RECONNECT_TASK = "reconnect"


class ConnectionState(BaseModel):
    connected: bool = False
    reconnect_attempts: int = 0
    should_reconnect: bool = True


class ConnectionSupervisor:
    """Connects one bot and keeps it connected.

    Args:
        name: Bot name, used as the login identity.
        settings: Server address, reconnect policy and cache location.
        factory: Creates a protocol client for a set of options.
        scheduler: The session's scheduler; ``stop()`` cancels all of it.
        on_client: Called with each new handle so the session can
            subscribe its event handlers.
        on_teardown: Called by ``stop()`` before disconnecting.
    """

    def __init__(
        self,
        name: str,
        settings: Settings,
        factory: ClientFactory,
        scheduler: TaskScheduler,
        *,
        on_client: Callable[[ProtocolClient], None],
        on_teardown: Callable[[], None] | None = None,
    ) -> None:
        self.name = name
        self.settings = settings
        self.scheduler = scheduler
        self.state = ConnectionState()
        self.client: ProtocolClient | None = None
        self._factory = factory
        self._on_client = on_client
        self._on_teardown = on_teardown
        # Bumped by every start and stop; a connect that finishes under an
        # older value lost the race and must not be installed.
        self._generation = 0

    @property
    def connected(self) -> bool:
        return self.state.connected

    @property
    def reconnect_pending(self) -> bool:
        return self.scheduler.is_pending(RECONNECT_TASK)

    @property
    def auth_cache_folder(self) -> Path:
        return Path(self.settings.auth_cache_path) / self.name

    def owns(self, client: ProtocolClient) -> bool:
        """Whether ``client`` is the live handle (not a discarded one)."""
        return client is self.client

    # ------------------------------------------------------------------
    # Connect
    # ------------------------------------------------------------------

    async def start(self, auto: bool = False) -> None:
        """Open a new connection unless one is already up.

        An explicit start (``auto=False``) resets the attempt counter and
        re-enables reconnects; automatic restarts from a timer do not.
        """
        if not auto:
            self.state.reconnect_attempts = 0
            self.state.should_reconnect = True
            self.scheduler.cancel(RECONNECT_TASK)

        if self.state.connected:
            logger.info("[%s] Already connected!", self.name)
            return

        logger.info(
            "[%s] Connecting to %s:%d...",
            self.name, self.settings.server_host, self.settings.server_port,
        )
        self.auth_cache_folder.mkdir(parents=True, exist_ok=True)
        options = ClientOptions(
            host=self.settings.server_host,
            port=self.settings.server_port,
            username=self.name,
            offline=self.settings.offline,
            profiles_folder=self.auth_cache_folder,
            on_msa_code=self._log_device_code,
        )

        self._generation += 1
        generation = self._generation
        try:
            client = await self._open_client(options)
        except Exception as e:
            logger.error("[%s] Connection error: %s", self.name, e)
            if generation == self._generation:
                self.schedule_reconnect()
            return

        if generation != self._generation:
            logger.info("[%s] Connect superseded by stop or a newer connect, dropping it", self.name)
            client.disconnect("Superseded")
            return

        self._discard_client()
        self.client = client
        self._on_client(client)

    async def _open_client(self, options: ClientOptions) -> ProtocolClient:
        wait = self.settings.connect_retry_wait_seconds
        opener = with_retry(
            max_attempts=max(1, self.settings.connect_attempts),
            min_wait=wait,
            max_wait=wait * 4,
            extra_exceptions=(TransientNetworkError,),
        )(self._create_client)
        return await opener(options)

    async def _create_client(self, options: ClientOptions) -> ProtocolClient:
        return self._factory(options)

    def _discard_client(self) -> None:
        if self.client is not None:
            client = self.client
            self.client = None
            client.remove_all_listeners()
            client.disconnect("Replaced")

    def _log_device_code(self, code: DeviceCode) -> None:
        logger.warning("[%s] Microsoft Login Required!", self.name)
        logger.warning("[%s] Open: %s", self.name, code.verification_uri)
        logger.warning("[%s] Enter code: %s", self.name, code.user_code)

    def mark_connected(self) -> None:
        """The avatar spawned: the session is live."""
        self.state.connected = True
        self.state.reconnect_attempts = 0

    # ------------------------------------------------------------------
    # Disconnect events
    # ------------------------------------------------------------------

    def handle_close(self) -> None:
        logger.info("[%s] Disconnected from server", self.name)
        self.state.connected = False
        # Reconnect even if we never fully connected (e.g. ping timeout).
        if self.state.should_reconnect:
            self.schedule_reconnect()

    def handle_kick(self, message: str) -> None:
        logger.warning("[%s] Kicked: %s", self.name, message)
        self.state.connected = False
        self.schedule_reconnect()

    def handle_error(self, error: ErrorEvent) -> None:
        if error.is_read_error:
            logger.debug("[%s] Ignoring transient read error", self.name)
            return
        if error.is_ping_timeout:
            logger.warning("[%s] Error: Ping timed out (Network unstable)", self.name)
        else:
            logger.error("[%s] Error: %s", self.name, error.message)

        # A failed handshake may never produce a close event.
        if not self.state.connected and self.state.should_reconnect:
            self.schedule_reconnect()

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------

    def schedule_reconnect(self) -> bool:
        """Schedule one automatic reconnect. Returns True if one was scheduled."""
        if not self.state.should_reconnect:
            logger.info("[%s] Reconnect disabled", self.name)
            return False
        if self.reconnect_pending:
            return False

        limit = self.settings.reconnect_max_attempts
        if self.state.reconnect_attempts >= limit:
            logger.error("[%s] Max reconnect attempts (%d) reached", self.name, limit)
            self.state.should_reconnect = False
            return False

        self.state.reconnect_attempts += 1
        delay = self.settings.reconnect_delay_seconds
        logger.info(
            "[%s] Reconnecting in %.1fs... (attempt %d/%d)",
            self.name, delay, self.state.reconnect_attempts, limit,
        )
        self.scheduler.call_later(RECONNECT_TASK, delay, self._reconnect)
        return True

    async def _reconnect(self) -> None:
        await self.start(auto=True)

    def emergency_reconnect(self) -> None:
        """Drop the connection now and come back after the maintenance window."""
        delay = self.settings.emergency_reconnect_delay_seconds
        logger.warning("[%s] !!! EMERGENCY DISCONNECT TRIGGERED !!!", self.name)
        logger.warning("[%s] Server update warning received. Disconnecting immediately.", self.name)
        logger.warning("[%s] Will reconnect in %.0f seconds...", self.name, delay)

        self.stop()
        # stop() disables reconnects; this path wants exactly one.
        self.state.should_reconnect = True
        self.scheduler.cancel(RECONNECT_TASK)
        self.scheduler.call_later(RECONNECT_TASK, delay, self._emergency_reconnect)

    async def _emergency_reconnect(self) -> None:
        logger.info("[%s] Emergency wait over. Reconnecting...", self.name)
        await self.start(auto=True)

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Cancel every session timer, disable reconnects and disconnect."""
        if self.scheduler.is_pending(RECONNECT_TASK):
            logger.info("[%s] Cancelled pending reconnect", self.name)
        self.scheduler.cancel_all()
        self.state.should_reconnect = False
        self._generation += 1

        if self.client is None:
            logger.info("[%s] Not connected (no client)", self.name)
            return

        if self._on_teardown is not None:
            self._on_teardown()
        client = self.client
        self.client = None
        self.state.connected = False
        client.disconnect("Leaving")
        logger.info("[%s] Disconnected", self.name)
