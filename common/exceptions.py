"""Custom exception classes shared by the Tracker and Peer Node services."""


class P2PException(Exception):
    """
    Base exception class for all peer-network errors.
    """
    code = "INTERNAL_ERROR"


class InvalidArgumentError(P2PException):
    """
    Raised when a name, address or request body is malformed.
    """
    code = "INVALID_ARGUMENT"


class UploadTooLargeError(InvalidArgumentError):
    """
    Raised when an upload exceeds the configured size limit.
    """
    code = "UPLOAD_TOO_LARGE"


class PeerConflictError(P2PException):
    """
    Raised when registering a name that is held by a live peer.
    """
    code = "PEER_NAME_CONFLICT"


class NotFoundError(P2PException):
    """
    Base class for lookups of unknown keys.
    """
    code = "NOT_FOUND"


class PeerNotFoundError(NotFoundError):
    """
    Raised when a peer name is not in the registry.
    """
    code = "PEER_NOT_FOUND"


class SharedFileNotFoundError(NotFoundError):
    """
    Raised when no shared file matches an identifier.
    """
    code = "FILE_NOT_FOUND"


class ResourceExhaustedError(P2PException):
    """
    Raised when the concurrent transfer limit is reached.
    """
    code = "RESOURCE_EXHAUSTED"


class IOFailureError(P2PException):
    """
    Base class for storage or network faults during a transfer.
    """
    code = "IO_FAILURE"


class StorageIOError(IOFailureError):
    """
    Raised when the local file store cannot read or write.
    """
    code = "IO_FAILURE"


class ChecksumMismatchError(IOFailureError):
    """
    Raised when received bytes do not match the expected content hash.
    """
    code = "CHECKSUM_MISMATCH"


class PeerUnavailableError(IOFailureError):
    """
    Raised when a remote peer is unreachable or answers with an error.
    """
    code = "PEER_UNAVAILABLE"


class TrackerUnavailableError(IOFailureError):
    """
    Raised when the tracker is unreachable or answers with an error.
    """
    code = "TRACKER_UNAVAILABLE"
