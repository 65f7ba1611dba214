"""Configuration management using pydantic-settings.

Key patterns:
1. Multiple env files (.env, .env.local) - local overrides shared
2. validation_alias for explicit env var names
3. Layout data (slot indices, item ids, keywords) kept in nested models,
   never in control flow
4. Singleton instance for easy import; sessions may take their own

Usage:
    from shopbot.bot.config import settings
    print(settings.server_host)
"""

import logging
from typing import Self

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class MenuLayout(BaseModel):
    """Observed layout of the shop and AFK menus.

    Every slot index, item id and keyword the workflows rely on. The
    sub-menu / confirm disambiguation in particular only holds for the
    layout these defaults were taken from.
    """

    # Main menu: the "shard shop" entry sits in a fixed slot.
    main_signature_slot: int = 15
    main_signature_item: int = 660

    # Sub menu: the target item in the centre plus a band of the same item.
    target_item_id: int = 52
    sub_signature_slot: int = 13
    sub_band_slots: list[int] = Field(default_factory=lambda: list(range(9, 18)))
    sub_band_threshold: int = 5

    # Confirm menu: target item in the centre, both buttons populated.
    confirm_required_slots: list[int] = Field(default_factory=lambda: [11, 15])

    main_keywords: list[list[str]] = Field(default_factory=lambda: [["shard", "shop"]])
    sub_keywords: list[list[str]] = Field(
        default_factory=lambda: [["spawner", "skeleton"], ["skeleton", "spawner"]]
    )
    confirm_keywords: list[list[str]] = Field(default_factory=lambda: [["confirm"]])

    main_fallback_slot: int = 15
    sub_fallback_slot: int = 13
    confirm_fallback_slot: int = 15

    # Player inventory items matching this text (or the target id) get dropped.
    target_item_keyword: str = "spawner"

    afk_keyword: str = "afk"
    afk_full_keyword: str = "full"
    afk_item_id: int = 152
    afk_min_id_matches: int = 10
    afk_fallback_window: str = "first"
    afk_fallback_slot: int = 49

    player_window_ids: list[str] = Field(
        default_factory=lambda: [
            "inventory", "armor", "offhand", "ui", "0", "119", "120", "124", "-1", "none",
        ]
    )
    inventory_window_ids: list[str] = Field(default_factory=lambda: ["inventory", "0"])
    cursor_window_id: int = 124
    hotbar_size: int = 9
    # Slot updates at or beyond this index are ignored; no real window is this large.
    max_window_slots: int = 256


class TextRules(BaseModel):
    """Substrings and patterns used to classify server text."""

    chat_source_types: list[str] = Field(
        default_factory=lambda: ["chat", "whisper", "announcement"]
    )
    maintenance_warning: str = (
        "WARNING: Servers are updating, do not teleport or you will lose your "
        "location, you will be put back shortly.!"
    )
    success_tokens: list[str] = Field(
        default_factory=lambda: ["you received", "skeleton", "spawner"]
    )
    out_of_funds_pattern: str = r"you\s+(dont|do not)\s+have\s+enough\s+shards?"


class Settings(BaseSettings):
    """Bot settings loaded from environment variables.

    Durations are in seconds.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"),
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def check_timings(self) -> Self:
        """Warn about settings that make the bot misbehave on a real server."""
        if self.position_interval_seconds > 0.2:
            logger.warning(
                "Position updates every %.2fs may get the bot flagged as idle",
                self.position_interval_seconds,
            )
        if self.reconnect_max_attempts < 1:
            logger.warning("RECONNECT_MAX_ATTEMPTS < 1: automatic reconnects are disabled")
        return self

    # ==========================================================================
    # SERVER
    # ==========================================================================

    server_host: str = Field(
        default="localhost",
        validation_alias="SERVER_HOST",
        description="Server hostname",
    )

    server_port: int = Field(
        default=19132,
        validation_alias="SERVER_PORT",
        description="Server port",
    )

    offline: bool = Field(
        default=False,
        validation_alias="BOT_OFFLINE",
        description="Skip online authentication",
    )

    auth_cache_path: str = Field(
        default="./auth_cache",
        validation_alias="BOT_AUTH_CACHE_PATH",
        description="Base path for per-bot credential caches",
    )

    # ==========================================================================
    # RECONNECTS
    # ==========================================================================

    reconnect_delay_seconds: float = Field(
        default=5.0,
        validation_alias="RECONNECT_DELAY_SECONDS",
        description="Fixed delay before an automatic reconnect",
    )

    reconnect_max_attempts: int = Field(
        default=10,
        validation_alias="RECONNECT_MAX_ATTEMPTS",
        description="Automatic reconnects allowed before giving up",
    )

    emergency_reconnect_delay_seconds: float = Field(
        default=300.0,
        validation_alias="EMERGENCY_RECONNECT_DELAY_SECONDS",
        description="Wait after a maintenance broadcast before reconnecting",
    )

    connect_attempts: int = Field(
        default=2,
        validation_alias="BOT_CONNECT_ATTEMPTS",
        description="Tries per connect on transient handshake failures",
    )

    connect_retry_wait_seconds: float = Field(
        default=1.0,
        validation_alias="BOT_CONNECT_RETRY_WAIT_SECONDS",
        description="Minimum wait between handshake tries",
    )

    # ==========================================================================
    # AVATAR
    # ==========================================================================

    position_interval_seconds: float = Field(
        default=0.05,
        validation_alias="POSITION_INTERVAL_SECONDS",
        description="Cadence of avatar-state updates (20 per second)",
    )

    anti_afk_interval_seconds: float = Field(
        default=30.0,
        validation_alias="ANTI_AFK_INTERVAL_SECONDS",
        description="Cadence of anti-AFK jumps",
    )

    # ==========================================================================
    # AUTO-BUY
    # ==========================================================================

    menu_command: str = Field(default="/shop", validation_alias="AUTOBUY_MENU_COMMAND")
    menu_open_delay_seconds: float = Field(default=0.3, validation_alias="AUTOBUY_OPEN_DELAY_SECONDS")
    menu_retry_interval_seconds: float = Field(default=1.2, validation_alias="AUTOBUY_RETRY_INTERVAL_SECONDS")
    menu_retry_max: int = Field(default=5, validation_alias="AUTOBUY_RETRY_MAX")
    window_settle_seconds: float = Field(default=0.3, validation_alias="WINDOW_SETTLE_SECONDS")
    workflow_max_attempts: int = Field(
        default=2000,
        validation_alias="AUTOBUY_MAX_ATTEMPTS",
        description="Confirm clicks allowed before the safety stop",
    )

    # ==========================================================================
    # AFK MENU AND DROPS
    # ==========================================================================

    afk_command: str = Field(default="/afk", validation_alias="AFK_COMMAND")
    afk_first_probe_seconds: float = 0.35
    afk_probe_interval_seconds: float = 0.3
    afk_max_probes: int = 10
    afk_close_delay_seconds: float = 0.45

    drop_open_delay_seconds: float = 0.45
    drop_spacing_seconds: float = 0.17
    drop_close_padding_seconds: float = 0.55

    # ==========================================================================
    # LAYOUT DATA
    # ==========================================================================

    layout: MenuLayout = Field(default_factory=MenuLayout)
    text_rules: TextRules = Field(default_factory=TextRules)


# Singleton instance
settings = Settings.model_validate({})
