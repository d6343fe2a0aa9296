"""Parsing and validation of host:port network endpoints."""

import ipaddress
import re
from typing import Tuple

from common.exceptions import InvalidArgumentError

_HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def _is_valid_hostname(host: str) -> bool:
    if len(host) > 253:
        return False
    labels = host.rstrip(".").split(".")
    return all(_HOSTNAME_LABEL.match(label) for label in labels)


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split and validate a "host:port" endpoint.

    IPv6 hosts must be bracketed ("[::1]:8001").

    Args:
        address: Endpoint string

    Returns:
        Tuple of (host, port), host without brackets

    Raises:
        InvalidArgumentError: If the endpoint is malformed
    """
    if not isinstance(address, str):
        raise InvalidArgumentError("Address must be a string")

    address = address.strip()
    if address.startswith("["):
        host, sep, port_str = address[1:].partition("]:")
        if not sep:
            raise InvalidArgumentError(f"Invalid address '{address}': expected [host]:port")
        try:
            ipaddress.IPv6Address(host)
        except ValueError:
            raise InvalidArgumentError(f"Invalid address '{address}': bad IPv6 host")
    else:
        host, sep, port_str = address.rpartition(":")
        if not sep or not host:
            raise InvalidArgumentError(f"Invalid address '{address}': expected host:port")
        if ":" in host:
            raise InvalidArgumentError(f"Invalid address '{address}': IPv6 hosts must be bracketed")
        try:
            ipaddress.IPv4Address(host)
        except ValueError:
            if not _is_valid_hostname(host):
                raise InvalidArgumentError(f"Invalid address '{address}': bad host")

    if not (port_str.isascii() and port_str.isdigit()):
        raise InvalidArgumentError(f"Invalid address '{address}': port must be numeric")
    port = int(port_str)
    if not 1 <= port <= 65535:
        raise InvalidArgumentError(f"Invalid address '{address}': port out of range")

    return host, port


def normalize_address(address: str) -> str:
    """
    Validate an endpoint and return it in canonical "host:port" form.
    """
    host, port = parse_address(address)
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"
