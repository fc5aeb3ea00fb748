"""Client library for chunked uploads into a master/volume blob store."""

from client.cancellation import CancelScope
from client.config import Config
from client.seaweed import Seaweed
from client.uploader import ChunkedUploader, new_file_part, new_file_parts

__all__ = [
    "CancelScope",
    "ChunkedUploader",
    "Config",
    "Seaweed",
    "new_file_part",
    "new_file_parts",
]
