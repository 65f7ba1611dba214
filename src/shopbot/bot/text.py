"""Normalization and classification of inbound chat and system text.

Server text arrives with formatting escapes (``§a``), a stray ``Â`` left
over from a double UTF-8 decode, and arbitrary spacing. Everything is
normalized before matching. Classification never fails: text nobody
recognizes is a plain system notice.
"""

import re
from enum import StrEnum

from shopbot.bot.config import TextRules

_MOJIBAKE = "Â"
_FORMAT_ESCAPE = re.compile("§.", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")
_APOSTROPHES = re.compile("[’'`]")
_NON_ALNUM = re.compile(r"[^a-z0-9\s]")


def normalize(text: str | None) -> str:
    """Strip mojibake and formatting escapes, collapse spaces, lower-case."""
    cleaned = str(text or "").replace(_MOJIBAKE, "")
    cleaned = _FORMAT_ESCAPE.sub("", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip().lower()


def compact(text: str | None) -> str:
    """Normalize, then reduce to lower-case words separated by single spaces."""
    cleaned = _APOSTROPHES.sub("", normalize(text))
    cleaned = _NON_ALNUM.sub(" ", cleaned)
    return _WHITESPACE.sub(" ", cleaned).strip()


class TextKind(StrEnum):
    """What a line of inbound text means to the session."""

    PLAYER_CHAT = "player_chat"
    SYSTEM_NOTICE = "system_notice"
    EMERGENCY_BROADCAST = "emergency_broadcast"
    PURCHASE_SUCCESS = "purchase_success"
    OUT_OF_FUNDS = "out_of_funds"
    UNCLASSIFIED = "unclassified"


class TextClassifier:
    """Classifies text packets using a set of ``TextRules``."""

    def __init__(self, rules: TextRules | None = None) -> None:
        self.rules = rules or TextRules()
        self._warning = normalize(self.rules.maintenance_warning)
        self._success_tokens = [compact(token) for token in self.rules.success_tokens]
        self._out_of_funds = re.compile(self.rules.out_of_funds_pattern)
        self._chat_types = frozenset(self.rules.chat_source_types)

    def is_chat(self, source_type: str | None) -> bool:
        return (source_type or "") in self._chat_types

    def classify(
        self,
        text: str | None,
        source_type: str | None = None,
        *,
        sender: str | None = None,
        own_name: str | None = None,
        workflow_active: bool = False,
    ) -> TextKind:
        """Classify one line of text.

        Args:
            text: Raw message text.
            source_type: Packet text type (``chat``, ``raw``, ``tip``...).
            sender: Source name on the packet, if any.
            own_name: This bot's name; our own echoed chat is ignored.
            workflow_active: Purchase outcomes are only recognized while
                the auto-buy workflow runs.
        """
        if not text:
            return TextKind.UNCLASSIFIED

        if self.is_chat(source_type):
            if own_name is not None and sender == own_name:
                return TextKind.UNCLASSIFIED
            return TextKind.PLAYER_CHAT

        if self._warning and self._warning in normalize(text):
            return TextKind.EMERGENCY_BROADCAST

        if workflow_active:
            words = compact(text)
            # Stopping wins if a line somehow matches both.
            if self._out_of_funds.search(words):
                return TextKind.OUT_OF_FUNDS
            if all(token in words for token in self._success_tokens):
                return TextKind.PURCHASE_SUCCESS

        return TextKind.SYSTEM_NOTICE
