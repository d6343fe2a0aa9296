"""Configuration settings for the Tracker server."""

import os
from common.constants import (
    DEFAULT_TRACKER_PORT,
    DEFAULT_PEER_TTL_SECONDS,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
)


TRACKER_HOST = os.environ.get("TRACKER_HOST", "0.0.0.0")

TRACKER_PORT = int(os.environ.get("TRACKER_PORT", str(DEFAULT_TRACKER_PORT)))

PEER_TTL_SECONDS = float(os.environ.get("PEER_TTL_SECONDS", str(DEFAULT_PEER_TTL_SECONDS)))

SWEEP_INTERVAL_SECONDS = float(os.environ.get("SWEEP_INTERVAL_SECONDS", str(DEFAULT_SWEEP_INTERVAL_SECONDS)))


def validate_liveness_settings(ttl_seconds: float, sweep_interval_seconds: float) -> None:
    """
    Reject liveness timings that would evict peers between two sweeps.

    Raises:
        ValueError: If either value is not positive or the TTL does not exceed the interval
    """
    if sweep_interval_seconds <= 0:
        raise ValueError(f"Sweep interval must be positive, got {sweep_interval_seconds}")
    if ttl_seconds <= sweep_interval_seconds:
        raise ValueError(
            f"Peer TTL ({ttl_seconds}s) must be larger than the sweep interval ({sweep_interval_seconds}s)"
        )
