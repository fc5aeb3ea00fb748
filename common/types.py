"""Shared data type definitions (FilePart, SubmitResult)."""

from dataclasses import dataclass
from typing import BinaryIO, Optional


@dataclass
class FilePart:
    """
    Upload request for one logical file.

    ``server`` and ``fid`` are filled in once the master assigns a location.
    When ``owns_reader`` is set the uploader closes ``reader`` on every exit
    path; otherwise the caller keeps ownership of the stream.
    """
    reader: BinaryIO
    file_name: str
    file_size: int
    is_gzipped: bool = False
    mime_type: str = ''
    mod_time: int = 0
    collection: str = ''
    ttl: str = ''
    server: str = ''
    fid: str = ''
    owns_reader: bool = False

    def release(self) -> None:
        """Close the reader if this part owns it."""
        if self.owns_reader:
            self.reader.close()


@dataclass
class SubmitResult:
    """
    Per-file outcome of a batch upload.
    """
    file_name: str = ''
    file_url: str = ''
    fid: str = ''
    size: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        obj = {
            'fileName': self.file_name,
            'fileUrl': self.file_url,
            'fid': self.fid,
            'size': self.size,
            'error': self.error,
        }
        return {k: v for k, v in obj.items() if v}
