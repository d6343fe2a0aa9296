"""Project-wide constants (default ports, liveness timings, transfer limits)."""

DEFAULT_TRACKER_PORT: int = 9500
DEFAULT_PEER_PORT: int = 8001

DEFAULT_PEER_TTL_SECONDS: int = 30
DEFAULT_SWEEP_INTERVAL_SECONDS: int = 5
DEFAULT_HEARTBEAT_INTERVAL_SECONDS: int = 10

MAX_PEER_NAME_LENGTH: int = 64

STREAM_PIECE_SIZE_BYTES: int = 64 * 1024  # 64 KiB read/write piece
DEFAULT_MAX_UPLOAD_BYTES: int = 1024 * 1024 * 1024  # 1 GiB
DEFAULT_MAX_CONCURRENT_TRANSFERS: int = 8
MULTIPART_OVERHEAD_BYTES: int = 64 * 1024  # allowance for boundaries and part headers

TRACKER_TIMEOUT_SECONDS: int = 5
PEER_TRANSFER_TIMEOUT_SECONDS: int = 300

CONTENT_HASH_HEADER: str = "X-Content-SHA256"
