"""DCC offer formatting and parsing.

Offers travel inside CTCP framing::

    \\x01DCC SEND <filename> <ip-as-integer> <port> <size> [token]\\x01
    \\x01DCC CHAT chat <ip-as-integer> <port>\\x01
    \\x01DCC RESUME|ACCEPT <filename> <port> <position> [token]\\x01

File names containing spaces are double-quoted.
"""

from __future__ import annotations

import ipaddress
import re
import socket

from ..errors.internal import ParsingError
from ..irc.message import CTCP_DELIMITER, build_ctcp
from .models import DCCRequest, DCCRequestType

_QUOTED_NAME = re.compile(r'"([^"]*)"\s*(.*)')


def ip_to_int(address: str) -> int:
    """Convert a dotted IPv4 address to the integer form used in offers."""
    try:
        return int(ipaddress.IPv4Address(address))
    except ValueError as e:
        raise ParsingError(f"not an IPv4 address: {address!r}") from e


def int_to_ip(value: str | int) -> str:
    """Accept the integer or dotted form and return a dotted IPv4 address."""
    text = str(value).strip()
    try:
        if text.isdigit():
            return str(ipaddress.IPv4Address(int(text)))
        return str(ipaddress.IPv4Address(text))
    except ValueError as e:
        raise ParsingError(f"invalid DCC address: {value!r}") from e


def _quote_name(file_name: str) -> str:
    return f'"{file_name}"' if " " in file_name else file_name


def build_dcc_send(
    file_name: str, address: str, port: int, size: int, token: str | None = None
) -> str:
    body = f"{_quote_name(file_name)} {ip_to_int(address)} {port} {size}"
    if token:
        body = f"{body} {token}"
    return build_ctcp("DCC", f"SEND {body}")


def split_file_name(argument: str) -> tuple[str, str]:
    """Split a possibly quoted file name from the rest of the arguments."""
    if not argument:
        raise ParsingError("missing DCC file name")
    if argument.startswith('"'):
        match = _QUOTED_NAME.match(argument)
        if not match:
            raise ParsingError(f"unmatched quote in DCC file name: {argument!r}")
        return match.group(1), match.group(2)
    name, _, rest = argument.partition(" ")
    return name, rest.lstrip()


def _to_int(value: str, what: str) -> int:
    try:
        number = int(value)
    except ValueError as e:
        raise ParsingError(f"invalid DCC {what}: {value!r}") from e
    if number < 0:
        raise ParsingError(f"invalid DCC {what}: {value!r}")
    return number


def parse_dcc_request(sender: str, target: str, text: str) -> DCCRequest | None:
    """Parse a DCC offer from message content.

    Returns ``None`` when ``text`` is not a DCC message at all.

    Raises:
        ParsingError: If it is a DCC message with malformed arguments.
    """
    body = text
    if body.startswith(CTCP_DELIMITER):
        body = body.strip(CTCP_DELIMITER)
    if not body.upper().startswith("DCC "):
        return None
    verb, _, arguments = body[4:].strip().partition(" ")
    try:
        request_type = DCCRequestType(verb.upper())
    except ValueError as e:
        raise ParsingError(f"unsupported DCC request: {verb!r}") from e

    file_name, rest = split_file_name(arguments.strip())
    fields = rest.split()

    if request_type in (DCCRequestType.RESUME, DCCRequestType.ACCEPT):
        if len(fields) < 2:
            raise ParsingError(f"truncated DCC {request_type.value}: {text!r}")
        return DCCRequest(
            sender=sender,
            target=target,
            type=request_type,
            file_name=file_name,
            file_size=_to_int(fields[1], "position"),
            address="",
            port=_to_int(fields[0], "port"),
            token=fields[2] if len(fields) > 2 else None,
        )

    if len(fields) < 2:
        raise ParsingError(f"truncated DCC {request_type.value}: {text!r}")
    size = 0
    if request_type is DCCRequestType.SEND:
        if len(fields) < 3:
            raise ParsingError(f"DCC SEND without size: {text!r}")
        size = _to_int(fields[2], "size")
    return DCCRequest(
        sender=sender,
        target=target,
        type=request_type,
        file_name=file_name,
        file_size=size,
        address=int_to_ip(fields[0]),
        port=_to_int(fields[1], "port"),
        token=fields[3] if len(fields) > 3 else None,
    )


def detect_local_address() -> str:
    """Best guess at the address peers should connect to.

    Uses the routing table via an unconnected UDP socket; nothing is sent.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
            probe.connect(("8.8.8.8", 65530))
            return probe.getsockname()[0]
    except OSError:
        return "127.0.0.1"
