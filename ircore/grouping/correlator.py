"""Buffers multi-line numeric replies and hands them on as one unit.

A WHOIS answer, a NAMES listing or the MOTD arrives as a burst of numerics
terminated by an end marker. Lines are buffered per group id
(``<family>:<key>``) until the family's marker arrives; groups whose marker
never shows up are evicted after an idle timeout.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from ..constants import REPLY_GROUP_TIMEOUT
from ..irc.message import IRCMessage
from ..logs.logger import logger

WHOIS_END_TEXT = "End of /WHOIS list"

# Numerics that close a family
_END_MARKERS: dict[str, frozenset[str]] = {
    "whois": frozenset({"318"}),
    "whowas": frozenset({"369"}),
    "names": frozenset({"366"}),
    "motd": frozenset({"376", "422"}),
    "list": frozenset({"323"}),
    "banlist": frozenset({"368"}),
}

_WHOIS_NUMERICS = frozenset(
    {"311", "312", "313", "317", "318", "319", "320", "330", "338", "378", "671"}
)
_WHOWAS_NUMERICS = frozenset({"314", "369"})
_NAMES_NUMERICS = frozenset({"353", "366"})
_MOTD_NUMERICS = frozenset({"375", "372", "376", "422"})
_LIST_NUMERICS = frozenset({"321", "322", "323"})
_BANLIST_NUMERICS = frozenset({"367", "368"})


@dataclass(frozen=True, slots=True)
class AggregateReply:
    """Synthetic message wrapping every line of a completed group."""

    group_id: str
    title: str
    messages: tuple[IRCMessage, ...]
    timestamp: float

    @property
    def family(self) -> str:
        return family_of(self.group_id)


@dataclass
class PendingGroup:
    group_id: str
    title: str
    messages: list[IRCMessage] = field(default_factory=list)
    last_activity: float = 0.0

    def to_aggregate(self) -> AggregateReply:
        return AggregateReply(
            group_id=self.group_id,
            title=self.title,
            messages=tuple(self.messages),
            timestamp=self.messages[0].received_at,
        )


def family_of(group_id: str) -> str:
    return group_id.partition(":")[0].lower()


class ReplyCorrelator:
    def __init__(
        self,
        timeout: float = REPLY_GROUP_TIMEOUT,
        *,
        clock: Callable[[], float] = time.monotonic,
        on_evict: Callable[[PendingGroup], object] | None = None,
    ) -> None:
        self.timeout = timeout
        self._clock = clock
        self._on_evict = on_evict
        self._groups: dict[str, PendingGroup] = {}

    def __len__(self) -> int:
        return len(self._groups)

    def __contains__(self, group_id: object) -> bool:
        return group_id in self._groups

    def add_to_group(self, group_id: str, title: str, message: IRCMessage) -> None:
        self.sweep()
        group = self._groups.get(group_id)
        if group is None:
            group = PendingGroup(group_id, title)
            self._groups[group_id] = group
        group.messages.append(message)
        group.last_activity = self._clock()

    def is_complete(self, group_id: str) -> bool:
        """Whether the group's end-of-reply marker has been buffered.

        Families without a known marker never complete on their own.
        """
        group = self._groups.get(group_id)
        if group is None:
            return False
        family = family_of(group_id)
        markers = _END_MARKERS.get(family)
        if markers is None:
            return False
        for message in group.messages:
            if message.command in markers:
                return True
            if family == "whois" and WHOIS_END_TEXT in (message.content or ""):
                return True
        return False

    def complete_group(self, group_id: str) -> IRCMessage | AggregateReply | None:
        group = self._groups.pop(group_id, None)
        if group is None or not group.messages:
            return None
        if len(group.messages) == 1:
            return group.messages[0]
        return group.to_aggregate()

    def flush(self) -> list[IRCMessage | AggregateReply]:
        """Complete every pending group, oldest first."""
        completed = []
        for group_id in list(self._groups):
            unit = self.complete_group(group_id)
            if unit is not None:
                completed.append(unit)
        return completed

    def sweep(self) -> int:
        """Evict groups idle for longer than the timeout; returns how many."""
        now = self._clock()
        expired = [
            group_id
            for group_id, group in self._groups.items()
            if now - group.last_activity > self.timeout
        ]
        for group_id in expired:
            group = self._groups.pop(group_id)
            logger.log_event(
                "grouping",
                "evicted",
                level=logging.DEBUG,
                group_id=group_id,
                buffered=len(group.messages),
            )
            if self._on_evict is not None:
                try:
                    self._on_evict(group)
                except Exception as e:  # noqa: BLE001
                    logger.log_event(
                        "grouping",
                        "evict_callback_error",
                        level=logging.ERROR,
                        group_id=group_id,
                        error=str(e),
                    )
        return len(expired)

    def route(self, message: IRCMessage) -> IRCMessage | AggregateReply | None:
        """Feed one inbound message through the correlator.

        Returns the message itself when it belongs to no reply family,
        ``None`` while a family is still buffering and the completed unit once
        the family's end marker arrives.
        """
        key = self._group_key(message)
        if key is None:
            return message
        group_id, title = key
        self.add_to_group(group_id, title, message)
        if self.is_complete(group_id):
            return self.complete_group(group_id)
        return None

    @staticmethod
    def _group_key(message: IRCMessage) -> tuple[str, str] | None:
        command = message.command
        params = message.params
        if not message.is_numeric:
            return None
        subject = params[1] if len(params) > 2 else None
        if command in _WHOIS_NUMERICS and subject:
            return f"whois:{subject.lower()}", f"Whois: {subject}"
        if command in _WHOWAS_NUMERICS and subject:
            return f"whowas:{subject.lower()}", f"Whowas: {subject}"
        if command in _NAMES_NUMERICS:
            # 353 carries a channel-type token before the channel
            channel = params[2] if command == "353" and len(params) > 3 else subject
            if channel:
                return f"names:{channel.lower()}", f"Users in {channel}"
        if command in _MOTD_NUMERICS:
            server = message.sender or ""
            return f"motd:{server.lower()}", f"Message of the day {server}".rstrip()
        if command in _LIST_NUMERICS:
            return "list:", "Channel list"
        if command in _BANLIST_NUMERICS and subject:
            return f"banlist:{subject.lower()}", f"Ban list for {subject}"
        return None
