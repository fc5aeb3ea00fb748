"""Command request data types for CLI."""

from dataclasses import dataclass
from typing import Literal


@dataclass(frozen=True)
class UploadCommand:
    """Upload one or more local files."""

    file_list: tuple[str, ...]
    collection: str = ""
    ttl: str = ""
    command: Literal["upload"] = "upload"


@dataclass(frozen=True)
class ReplaceCommand:
    """Replace the content stored under a file id."""

    fid: str
    file_path: str
    delete_first: bool = False
    command: Literal["replace"] = "replace"


@dataclass(frozen=True)
class DeleteCommand:
    """Delete files by id."""

    fids: tuple[str, ...]
    command: Literal["delete"] = "delete"


@dataclass(frozen=True)
class DownloadCommand:
    """Download a file by id."""

    fid: str
    output_path: str | None = None
    command: Literal["download"] = "download"


@dataclass(frozen=True)
class ManifestCommand:
    """Show the chunk manifest stored under a file id."""

    fid: str
    command: Literal["manifest"] = "manifest"


@dataclass(frozen=True)
class GrowCommand:
    """Ask the master to grow volumes."""

    count: int = 0
    collection: str = ""
    replication: str = ""
    data_center: str = ""
    ttl: str = ""
    command: Literal["grow"] = "grow"


CommandRequest = (
    UploadCommand
    | ReplaceCommand
    | DeleteCommand
    | DownloadCommand
    | ManifestCommand
    | GrowCommand
)
