"""Custom exception classes for the storage client."""

from typing import List, Optional


class WeedError(Exception):
    """
    Base exception class for all storage client errors.
    """
    pass


class AllocationError(WeedError):
    """
    Raised when the master refuses or cannot assign new file ids.
    """
    pass


class LocationLookupError(WeedError):
    """
    Raised when a file id cannot be resolved to a volume server.
    """
    pass


class TransportError(WeedError):
    """
    Raised on network failures, timeouts and unsuccessful HTTP responses.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ManifestDecodeError(WeedError):
    """
    Raised when a chunk manifest body is malformed or cannot be decompressed.
    """
    pass


class ManifestEncodeError(WeedError):
    """
    Raised when a chunk manifest cannot be serialized.
    """
    pass


class IncompleteStreamError(WeedError):
    """
    Raised when the content stream ends before the declared size was read.
    """
    pass


class OperationCancelledError(WeedError):
    """
    Raised when a cancel scope is cancelled or its deadline has passed.
    """
    pass


class OrphanedChunksError(WeedError):
    """
    Raised when not every chunk of a manifest could be deleted.

    The cluster may still hold the listed chunk blobs.
    """

    def __init__(self, failed_fids: List[str], total: int):
        super().__init__(
            f"Not all chunks deleted: {len(failed_fids)} of {total} failed ({', '.join(failed_fids)})"
        )
        self.failed_fids = failed_fids
        self.total = total


class ChunkUploadError(WeedError):
    """
    Raised when one chunk of a multi-chunk upload fails.

    Chunks written before the failure have been deleted again; any that
    could not be removed are listed in ``orphaned_fids``.
    """

    def __init__(self, chunk_index: int, cause: Exception, orphaned_fids: Optional[List[str]] = None):
        super().__init__(f"Chunk {chunk_index + 1} upload failed: {cause}")
        self.chunk_index = chunk_index
        self.cause = cause
        self.orphaned_fids = orphaned_fids or []
