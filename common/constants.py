"""Project-wide constants (chunk sizes, timeouts, wire markers)."""

DEFAULT_CHUNK_SIZE_BYTES: int = 64 * 1024 * 1024  # 64 MiB default chunk size

DEFAULT_MASTER_HOST: str = "localhost"
DEFAULT_MASTER_PORT: int = 9333

DEFAULT_TIMEOUT_SECONDS: int = 45
DEFAULT_MAX_CONNECTIONS: int = 512

LOCATION_CACHE_TTL_SECONDS: int = 10 * 60

ASSIGN_PATH: str = "/dir/assign"
LOOKUP_PATH: str = "/dir/lookup"
GROW_PATH: str = "/vol/grow"

MANIFEST_MIME_TYPE: str = "application/json"
CHUNK_MIME_TYPE: str = "application/octet-stream"
GZIP_MAGIC: bytes = b"\x1f\x8b"
