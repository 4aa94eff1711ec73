"""IRC protocol layer: message codec, session client, event hub and ident responder."""

from .client import IRCClient, normalize_channel
from .events import EventHub
from .ident import IdentResponder, build_ident_reply
from .message import (
    IRCMessage,
    build_ctcp,
    encode_irc_message,
    parse_ctcp,
    parse_irc_message,
)
from .models import ClientEvent, ConnectionState, ConnectParams, CTCPRequest

__all__ = [
    "ClientEvent",
    "ConnectParams",
    "ConnectionState",
    "CTCPRequest",
    "EventHub",
    "IRCClient",
    "IRCMessage",
    "IdentResponder",
    "build_ctcp",
    "build_ident_reply",
    "encode_irc_message",
    "normalize_channel",
    "parse_ctcp",
    "parse_irc_message",
]
