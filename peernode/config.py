"""Configuration settings for a Peer Node."""

import os
import socket

from common.constants import (
    DEFAULT_PEER_PORT,
    DEFAULT_TRACKER_PORT,
    DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
    DEFAULT_MAX_CONCURRENT_TRANSFERS,
    DEFAULT_MAX_UPLOAD_BYTES,
)


def get_host_ip() -> str:
    """
    Get this machine's outward-facing IP address.

    Uses the routing table to find the interface that would reach the
    internet; no packet is sent.
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(('8.8.8.8', 80))
        ip = s.getsockname()[0]
    except OSError:
        ip = "127.0.0.1"
    finally:
        s.close()
    return ip


PEER_NAME = os.environ.get("PEER_NAME") or socket.gethostname()

PEER_HOST = os.environ.get("PEER_HOST", "0.0.0.0")

PEER_PORT = int(os.environ.get("PEER_PORT", str(DEFAULT_PEER_PORT)))

PEER_ADVERTISE_ADDR = os.environ.get("PEER_ADVERTISE_ADDR") or ""

PEER_STORAGE_PATH = os.environ.get("PEER_STORAGE_PATH", "./data/shared")

TRACKER_URL = os.environ.get("TRACKER_URL", f"http://127.0.0.1:{DEFAULT_TRACKER_PORT}")

HEARTBEAT_INTERVAL_SECONDS = float(
    os.environ.get("HEARTBEAT_INTERVAL_SECONDS", str(DEFAULT_HEARTBEAT_INTERVAL_SECONDS))
)

MAX_CONCURRENT_TRANSFERS = int(
    os.environ.get("MAX_CONCURRENT_TRANSFERS", str(DEFAULT_MAX_CONCURRENT_TRANSFERS))
)

MAX_UPLOAD_BYTES = int(os.environ.get("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES)))


def default_advertise_addr(port: int = PEER_PORT) -> str:
    """Address other peers should use to reach this node's transfer API."""
    return PEER_ADVERTISE_ADDR or f"{get_host_ip()}:{port}"
