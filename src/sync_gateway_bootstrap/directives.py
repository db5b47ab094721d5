"""
Placeholder directive parsing.

Directives come from the command line in two forms:

    --auto-fill KEY=VALUE             literal replacement
    --auto-fill-asg KEY=ASG[:PORT]    replaced with the ASG members' URLs

Example:
    parse_assignment("<DB_NAME>=travel")
        -> PlaceholderDirective(name="<DB_NAME>", kind=LITERAL, value="travel")
    parse_asg_assignment("<SERVERS>=couchbase-asg:8091")
        -> PlaceholderDirective(name="<SERVERS>", kind=ASG_REFERENCE,
                                asg_name="couchbase-asg", port=8091)
"""

import os
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from .errors import MalformedDirective

logger = logging.getLogger(os.getenv("LOGGER_NAME", "SYNC_GATEWAY_BOOTSTRAP"))

ASSIGNMENT_SEPARATOR = "="
PORT_SEPARATOR = ":"
MIN_PORT = 1
MAX_PORT = 65535


class DirectiveKind(Enum):
    LITERAL = "literal"
    ASG_REFERENCE = "asg_reference"


@dataclass(frozen=True)
class PlaceholderDirective:
    """
    A placeholder token and how to resolve it.

    Attributes:
        name: Token to replace in the configuration document. Never empty.
        kind: LITERAL or ASG_REFERENCE.
        value: Replacement text (LITERAL only).
        asg_name: Auto Scaling Group to resolve (ASG_REFERENCE only).
        port: Optional port appended to every discovered hostname.
    """
    name: str
    kind: DirectiveKind
    value: Optional[str] = None
    asg_name: Optional[str] = None
    port: Optional[int] = None


def _split_assignment(raw: str) -> tuple[str, str]:
    if raw is None or ASSIGNMENT_SEPARATOR not in raw:
        raise MalformedDirective(str(raw), f"expected KEY{ASSIGNMENT_SEPARATOR}VALUE")
    key, value = raw.split(ASSIGNMENT_SEPARATOR, 1)
    if not key:
        raise MalformedDirective(raw, "placeholder key cannot be empty")
    return key, value


def parse_assignment(raw: str) -> PlaceholderDirective:
    """
    Parse a literal KEY=VALUE assignment.

    Only the first '=' separates key from value, so values may contain '='.
    An empty value is allowed and removes the placeholder from the document.

    Raises:
        MalformedDirective: If there is no '=' or the key is empty.
    """
    key, value = _split_assignment(raw)
    logger.debug(f"Parsed literal directive for {key}")
    return PlaceholderDirective(name=key, kind=DirectiveKind.LITERAL, value=value)


def parse_asg_assignment(raw: str) -> PlaceholderDirective:
    """
    Parse a KEY=ASG_NAME[:PORT] assignment.

    The target is everything after the last '='; it is split once on its
    rightmost ':' into the ASG name and port.

    Raises:
        MalformedDirective: If there is no '=', the key or ASG name is empty,
            or the port is not an integer in 1..65535.
    """
    _split_assignment(raw)
    key, target = raw.rsplit(ASSIGNMENT_SEPARATOR, 1)

    port = None
    asg_name = target
    if PORT_SEPARATOR in target:
        asg_name, port_str = target.rsplit(PORT_SEPARATOR, 1)
        try:
            port = int(port_str)
        except ValueError:
            raise MalformedDirective(raw, f"port '{port_str}' is not an integer")
        if port < MIN_PORT or port > MAX_PORT:
            raise MalformedDirective(raw, f"port {port} must be between {MIN_PORT} and {MAX_PORT}")

    if not key:
        raise MalformedDirective(raw, "placeholder key cannot be empty")
    if not asg_name:
        raise MalformedDirective(raw, "Auto Scaling Group name cannot be empty")

    logger.debug(f"Parsed ASG directive for {key}: asg={asg_name}, port={port}")
    return PlaceholderDirective(name=key, kind=DirectiveKind.ASG_REFERENCE, asg_name=asg_name, port=port)
