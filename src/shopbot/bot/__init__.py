"""Domain code for a single bot session.

This subpackage contains everything that knows about the game protocol:
- session.py: BotSession, owns state and wires protocol events
- connection.py: Connect, reconnect and emergency reconnect
- windows.py: Local mirror of windows and the player inventory
- text.py: Normalization and classification of server text
- workflow.py: Auto-buy menu navigation state machine
- afk.py: One-shot AFK menu selection
- actions.py: Outbound request builders
- models.py: Typed records for inbound events
- config.py: Configuration via pydantic-settings
- protocol.py: The protocol-client seam
- errors.py: Exception hierarchy
"""

from shopbot.bot.config import MenuLayout, Settings, TextRules, settings
from shopbot.bot.errors import (
    BotError,
    ProtocolRequestError,
    TransientNetworkError,
    WorkflowSafetyStop,
)
from shopbot.bot.session import BotSession
from shopbot.bot.text import TextClassifier, TextKind
from shopbot.bot.workflow import Stage

__all__ = [
    "BotError",
    "BotSession",
    "MenuLayout",
    "ProtocolRequestError",
    "Settings",
    "Stage",
    "TextClassifier",
    "TextKind",
    "TextRules",
    "TransientNetworkError",
    "WorkflowSafetyStop",
    "settings",
]
