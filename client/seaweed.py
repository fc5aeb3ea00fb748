"""Client facade wiring config, transport, master, resolver and uploader."""

from pathlib import Path
from typing import BinaryIO, List, Optional, Union

import httpx

from client.cancellation import CancelScope
from client.config import Config
from client.http_client import HttpClient, mk_url
from client.location import LocationResolver
from client.master_client import MasterClient
from client.schemas import AssignResult
from client.uploader import ChunkedUploader, new_file_part, new_file_parts
from common.exceptions import TransportError
from common.location_cache import LocationCache
from common.logging_config import get_logger
from common.manifest import ChunkManifest, decode_manifest, is_gzip_data
from common.types import FilePart, SubmitResult

logger = get_logger(__name__)


class Seaweed:
    """
    Storage client for one cluster.

    Every component, including the location cache, is owned by the instance.
    """

    def __init__(self, config: Optional[Config] = None, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize the client.

        Args:
            config: Configuration instance (in-memory defaults if None)
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.config = config or Config()
        self.http = HttpClient(self.config, transport=transport)
        self.master = MasterClient(self.http, self.config.get_master_address())
        self.cache = LocationCache(ttl_seconds=self.config.get_location_cache_ttl())
        self.resolver = LocationResolver(self.master, self.cache)
        self.uploader = ChunkedUploader(
            self.http,
            self.master,
            self.resolver,
            chunk_size=self.config.get_chunk_size(),
            upload_workers=self.config.get_upload_workers(),
            legacy_chunk_count=self.config.use_legacy_chunk_count(),
            compress_manifest=self.config.compress_manifest(),
        )
        logger.info(f"Initialized Seaweed client [master={self.master.master_address}]")

    def assign(self, count: int = 1, collection: str = '', ttl: str = '') -> AssignResult:
        return self.master.assign(count, collection, ttl)

    def lookup_file_id(self, fid: str, collection: str = '', use_cache: bool = True) -> str:
        """Return the full URL currently serving fid."""
        return self.resolver.lookup_file_url(fid, collection, use_cache)

    def upload_file(
        self,
        path: Union[str, Path],
        collection: str = '',
        ttl: str = '',
        scope: Optional[CancelScope] = None
    ) -> str:
        """
        Upload a local file and return its file id.
        """
        fp = new_file_part(path)
        fp.collection = collection
        fp.ttl = ttl
        return self.uploader.upload_part(fp, scope=scope)

    def upload_file_part(self, fp: FilePart, scope: Optional[CancelScope] = None) -> str:
        return self.uploader.upload_part(fp, scope=scope)

    def batch_upload_files(
        self,
        paths: List[Union[str, Path]],
        collection: str = '',
        ttl: str = ''
    ) -> List[SubmitResult]:
        """
        Upload local files sharing one id assignment.

        Raises:
            OSError: If any path cannot be opened (nothing is uploaded)
        """
        return self.uploader.batch_upload_parts(new_file_parts(paths), collection, ttl)

    def batch_upload_file_parts(
        self,
        parts: List[FilePart],
        collection: str = '',
        ttl: str = ''
    ) -> List[SubmitResult]:
        return self.uploader.batch_upload_parts(parts, collection, ttl)

    def replace_file(self, fid: str, path: Union[str, Path], delete_first: bool = False) -> str:
        """
        Replace the content stored under fid with a local file.
        """
        fp = new_file_part(path)
        fp.fid = fid
        return self.uploader.replace_part(fp, delete_first)

    def replace_file_part(self, fp: FilePart, delete_first: bool = False) -> str:
        return self.uploader.replace_part(fp, delete_first)

    def delete_file(self, fid: str, collection: str = '') -> None:
        self.uploader.delete_file(fid, collection)

    def delete_chunks(self, manifest: ChunkManifest, collection: str = '') -> None:
        self.uploader.delete_chunks(manifest, collection)

    def grow(
        self,
        count: int = 0,
        collection: str = '',
        replication: str = '',
        data_center: str = '',
        ttl: str = ''
    ) -> None:
        self.master.grow(count, collection, replication, data_center, ttl)

    def download_file(self, fid: str, dest: BinaryIO, collection: str = '') -> str:
        """
        Stream a file into dest. Chunked files are reassembled by the volume server.

        Returns:
            Suggested filename from the server, or "" if none
        """
        url = self.resolver.lookup_file_url(fid, collection)
        return self.http.download(url, dest)

    def read_manifest(self, fid: str, collection: str = '') -> ChunkManifest:
        """
        Fetch and decode the raw manifest stored under fid.

        Raises:
            ManifestDecodeError: If the blob is not a valid manifest
            TransportError: If the blob cannot be fetched
        """
        url = mk_url(self.resolver.resolve(fid, collection), fid, {'cm': 'false'})
        body = self.http.get(url)
        return decode_manifest(body, is_compressed=is_gzip_data(body))

    def download_chunked(self, fid: str, dest: BinaryIO, collection: str = '') -> ChunkManifest:
        """
        Reassemble a chunked file on the client, writing chunks in offset order.

        Returns:
            The manifest that was followed

        Raises:
            TransportError: If a chunk is missing or the bytes written do not
                match the manifest size
        """
        manifest = self.read_manifest(fid, collection)
        written = 0
        for chunk in manifest.chunks:
            if chunk.offset != written:
                raise TransportError(
                    f"Manifest {fid} has a gap at offset {written} (next chunk starts at {chunk.offset})"
                )
            body = self.http.get(self.resolver.lookup_file_url(chunk.fid, collection))
            dest.write(body)
            written += len(body)

        if written != manifest.size:
            raise TransportError(f"Reassembled {written} bytes for {fid}, manifest declares {manifest.size}")
        return manifest

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> 'Seaweed':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
