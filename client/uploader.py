"""Chunked upload orchestration: assign, upload chunks, publish manifest, roll back."""

import mimetypes
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import BinaryIO, Dict, Iterable, List, Optional, Tuple, Union

from client.cancellation import CancelScope
from client.http_client import HttpClient, mk_url
from client.location import LocationResolver
from client.master_client import MasterClient
from common.constants import CHUNK_MIME_TYPE, MANIFEST_MIME_TYPE
from common.exceptions import (
    ChunkUploadError,
    IncompleteStreamError,
    LocationLookupError,
    OperationCancelledError,
    OrphanedChunksError,
    TransportError,
    WeedError,
)
from common.logging_config import get_logger
from common.manifest import ChunkManifest, ChunkRecord, encode_manifest
from common.types import FilePart, SubmitResult

logger = get_logger(__name__)


def chunk_count(file_size: int, chunk_size: int, legacy: bool = False) -> int:
    """
    Number of chunks a file of file_size bytes is split into.

    The legacy formula always adds one, which yields a trailing empty chunk
    when file_size is an exact multiple of chunk_size.
    """
    if legacy:
        return file_size // chunk_size + 1
    return -(-file_size // chunk_size)


def read_bounded(reader: BinaryIO, limit: int) -> bytes:
    """
    Read up to limit bytes, looping over short reads until limit or EOF.
    """
    pieces = []
    remaining = limit
    while remaining > 0:
        piece = reader.read(remaining)
        if not piece:
            break
        pieces.append(piece)
        remaining -= len(piece)
    return b''.join(pieces)


def new_file_part(path: Union[str, Path]) -> FilePart:
    """
    Open a local file as an owned FilePart.

    A ".gz" suffix marks the content as gzipped and is stripped from the
    logical name; the MIME type is guessed from the remaining name.

    Raises:
        OSError: If the file cannot be opened or stat'ed
    """
    file_name = str(path)
    reader = open(file_name, 'rb')
    try:
        stat = os.fstat(reader.fileno())
    except OSError:
        reader.close()
        raise

    is_gzipped = file_name.lower().endswith('.gz')
    if is_gzipped:
        file_name = file_name[:-3]

    return FilePart(
        reader=reader,
        file_name=file_name,
        file_size=stat.st_size,
        is_gzipped=is_gzipped,
        mime_type=mimetypes.guess_type(file_name)[0] or '',
        mod_time=int(stat.st_mtime),
        owns_reader=True,
    )


def new_file_parts(paths: Iterable[Union[str, Path]]) -> List[FilePart]:
    """
    Open several local files. If any fails, the ones already opened are closed.
    """
    parts: List[FilePart] = []
    try:
        for path in paths:
            parts.append(new_file_part(path))
    except OSError:
        for part in parts:
            part.release()
        raise
    return parts


class ChunkedUploader:
    """
    Writes files into the cluster, splitting large ones into chunks.

    A file larger than chunk_size is stored as one blob per chunk plus a
    manifest blob under the file's own id. If any step fails after chunks
    were written, those chunks are deleted again before the error is raised.
    """

    def __init__(
        self,
        http: HttpClient,
        master: MasterClient,
        resolver: LocationResolver,
        chunk_size: int,
        upload_workers: int = 1,
        legacy_chunk_count: bool = False,
        compress_manifest: bool = False
    ):
        """
        Args:
            http: Shared HTTP transport
            master: Master client used for id assignment
            resolver: Location resolver for pre-assigned ids and deletes
            chunk_size: Chunk size in bytes; 0 disables chunking
            upload_workers: Chunks uploaded concurrently (1 = sequential)
            legacy_chunk_count: Use the size // chunk_size + 1 chunk count
            compress_manifest: Gzip manifests before publishing them
        """
        self.http = http
        self.master = master
        self.resolver = resolver
        self.chunk_size = chunk_size
        self.upload_workers = max(1, upload_workers)
        self.legacy_chunk_count = legacy_chunk_count
        self.compress_manifest = compress_manifest

    def upload_part(self, fp: FilePart, scope: Optional[CancelScope] = None) -> str:
        """
        Upload one file part and return its file id.

        Assigns an id if fp has none and resolves the volume server if only
        the id is known. An owned reader is closed whatever the outcome.

        Args:
            fp: File part to upload; fid and server are filled in place
            scope: Optional cancel scope bounding every network call

        Returns:
            The file id, the only handle needed to read or delete the file later

        Raises:
            AllocationError: If the master refuses to assign an id
            LocationLookupError: If a pre-assigned id cannot be resolved
            ChunkUploadError: If a chunk fails (written chunks are rolled back)
            TransportError: If the single-shot upload or the manifest publish fails
        """
        try:
            if not fp.fid:
                assigned = self.master.assign(1, fp.collection, fp.ttl, scope=scope)
                fp.server, fp.fid = assigned.url, assigned.fid
            if not fp.server:
                fp.server = self.resolver.resolve(fp.fid, fp.collection, use_cache=False, scope=scope)

            base_name = os.path.basename(fp.file_name)
            if self.chunk_size > 0 and fp.file_size > self.chunk_size:
                self._upload_chunked(fp, base_name, scope)
            else:
                self.http.upload(
                    mk_url(fp.server, fp.fid, self._write_args(fp)),
                    base_name,
                    fp.reader,
                    is_gzipped=fp.is_gzipped,
                    mime_type=fp.mime_type,
                    scope=scope
                )
        finally:
            fp.release()

        logger.info(f"Uploaded {fp.file_name} as {fp.fid} ({fp.file_size} bytes)")
        return fp.fid

    def replace_part(
        self,
        fp: FilePart,
        delete_first: bool = False,
        scope: Optional[CancelScope] = None
    ) -> str:
        """
        Overwrite the content stored under fp.fid.

        With delete_first the old object is deleted before uploading; a failed
        delete (e.g. the object is already gone) does not stop the replace.
        """
        if delete_first and fp.fid:
            try:
                self.delete_file(fp.fid, fp.collection, scope=scope)
            except WeedError as e:
                logger.info(f"Ignoring delete failure before replacing {fp.fid}: {e}")
        return self.upload_part(fp, scope=scope)

    def delete_file(self, fid: str, collection: str = '', scope: Optional[CancelScope] = None) -> None:
        """
        Delete one blob. Deleting a blob that no longer exists succeeds.

        Raises:
            LocationLookupError: If fid cannot be resolved to a volume server
            TransportError: If the volume server rejects the delete
        """
        try:
            url = self.resolver.lookup_file_url(fid, collection, use_cache=False, scope=scope)
        except LocationLookupError as e:
            raise LocationLookupError(f"Failed to lookup {fid}: {e}") from e
        try:
            self.http.delete(url, scope=scope)
        except TransportError as e:
            raise TransportError(f"Failed to delete {url}: {e}", e.status_code) from e
        logger.debug(f"Deleted {fid}")

    def delete_chunks(self, manifest: ChunkManifest, collection: str = '') -> None:
        """
        Delete every chunk listed in a manifest, continuing past failures.

        Raises:
            OrphanedChunksError: If any chunk could not be deleted; the cluster
                may still hold those blobs
        """
        failed = []
        for chunk in manifest.chunks:
            try:
                self.delete_file(chunk.fid, collection)
            except WeedError as e:
                logger.warning(f"Failed to delete chunk {chunk.fid} of {manifest.name}: {e}")
                failed.append(chunk.fid)

        if failed:
            raise OrphanedChunksError(failed, len(manifest.chunks))

    def batch_upload_parts(
        self,
        parts: List[FilePart],
        collection: str = '',
        ttl: str = '',
        scope: Optional[CancelScope] = None
    ) -> List[SubmitResult]:
        """
        Upload several files with a single id assignment.

        File k gets the assigned id for k == 0 and "<id>_<k>" otherwise, all on
        the same volume server. Failures are isolated per file.

        Returns:
            One SubmitResult per input part, in input order
        """
        results = [SubmitResult(file_name=fp.file_name) for fp in parts]
        if not parts:
            return results

        try:
            assigned = self.master.assign(len(parts), collection, ttl, scope=scope)
        except WeedError as e:
            logger.error(f"Batch assign of {len(parts)} id(s) failed: {e}")
            for fp, result in zip(parts, results):
                result.error = str(e)
                fp.release()
            return results

        for index, (fp, result) in enumerate(zip(parts, results)):
            fp.fid = assigned.fid if index == 0 else f"{assigned.fid}_{index}"
            fp.server = assigned.url
            fp.collection = collection
            fp.ttl = ttl

            result.fid = fp.fid
            result.size = fp.file_size
            result.file_url = f"{assigned.public_url}/{fp.fid}"

            try:
                self.upload_part(fp, scope=scope)
            except Exception as e:
                logger.warning(f"Batch upload of {fp.file_name} as {fp.fid} failed: {e}")
                result.error = str(e) or type(e).__name__

        return results

    def _write_args(self, fp: FilePart, is_manifest: bool = False) -> Dict[str, str]:
        args = {}
        if fp.mod_time:
            args['ts'] = str(fp.mod_time)
        if is_manifest:
            args['cm'] = 'true'
        return args

    def _upload_chunked(self, fp: FilePart, base_name: str, scope: Optional[CancelScope]) -> None:
        manifest = ChunkManifest(name=base_name, mime=fp.mime_type, size=fp.file_size)
        manifest.chunks = self._upload_chunks(fp, base_name, scope)

        written = sum(chunk.size for chunk in manifest.chunks)
        if written != fp.file_size:
            error = IncompleteStreamError(
                f"Stream for {base_name} yielded {written} bytes, {fp.file_size} declared"
            )
            self._rollback(manifest, fp.collection, error)
            raise error

        try:
            self._publish_manifest(fp, manifest, scope)
        except WeedError as e:
            self._rollback(manifest, fp.collection, e)
            raise

    def _upload_chunks(
        self,
        fp: FilePart,
        base_name: str,
        scope: Optional[CancelScope]
    ) -> List[ChunkRecord]:
        """
        Read slices off fp.reader in order and upload each as its own blob.

        At most upload_workers slices are held in memory. Once a chunk fails
        no further slice is read; in-flight uploads are drained before the
        successful ones are rolled back.
        """
        count = chunk_count(fp.file_size, self.chunk_size, self.legacy_chunk_count)
        slots = threading.Semaphore(self.upload_workers)
        futures: List[Future] = []
        read_failure: Optional[Tuple[int, Exception]] = None

        logger.debug(f"Uploading {base_name} in {count} chunk(s) of {self.chunk_size} bytes")

        with ThreadPoolExecutor(max_workers=self.upload_workers, thread_name_prefix='chunk-upload') as pool:
            for index in range(count):
                slots.acquire()
                if any(f.done() and f.exception() is not None for f in futures):
                    slots.release()
                    break

                try:
                    if scope is not None:
                        scope.raise_if_cancelled()
                    data = read_bounded(fp.reader, self.chunk_size)
                except Exception as e:
                    slots.release()
                    read_failure = (index, e)
                    break

                if not data and not (self.legacy_chunk_count and index == count - 1):
                    slots.release()
                    break

                future = pool.submit(self._upload_chunk, fp, f"{base_name}-{index + 1}", data, scope)
                future.add_done_callback(lambda _: slots.release())
                futures.append(future)

        records = []
        failures = []
        for index, future in enumerate(futures):
            error = future.exception()
            if error is None:
                fid, size = future.result()
                records.append(ChunkRecord(fid=fid, offset=index * self.chunk_size, size=size))
            else:
                failures.append((index, error))
        if read_failure is not None:
            failures.append(read_failure)

        if failures:
            index, error = failures[0]
            orphaned = self._rollback(ChunkManifest(name=base_name, chunks=records), fp.collection, error)
            if isinstance(error, OperationCancelledError) or not isinstance(error, (WeedError, OSError)):
                raise error
            raise ChunkUploadError(index, error, orphaned) from error

        return records

    def _upload_chunk(
        self,
        fp: FilePart,
        filename: str,
        data: bytes,
        scope: Optional[CancelScope]
    ) -> Tuple[str, int]:
        assigned = self.master.assign(1, fp.collection, fp.ttl, scope=scope)
        self.http.upload(
            mk_url(assigned.url, assigned.fid),
            filename,
            data,
            is_gzipped=False,
            mime_type=CHUNK_MIME_TYPE,
            scope=scope
        )
        logger.debug(f"Uploaded chunk {filename} as {assigned.fid} ({len(data)} bytes)")
        return assigned.fid, len(data)

    def _publish_manifest(self, fp: FilePart, manifest: ChunkManifest, scope: Optional[CancelScope]) -> None:
        payload = encode_manifest(manifest, compress=self.compress_manifest)
        self.http.upload(
            mk_url(fp.server, fp.fid, self._write_args(fp, is_manifest=True)),
            manifest.name,
            payload,
            is_gzipped=self.compress_manifest,
            mime_type=MANIFEST_MIME_TYPE,
            scope=scope
        )
        logger.debug(f"Published manifest for {manifest.name} as {fp.fid} ({len(manifest.chunks)} chunks)")

    def _rollback(self, manifest: ChunkManifest, collection: str, cause: Exception) -> List[str]:
        """
        Delete the chunks of an unpublished upload.

        Runs without the caller's cancel scope so that an expired deadline
        does not leave chunks behind.

        Returns:
            Chunk ids that could not be deleted
        """
        if not manifest.chunks:
            return []

        logger.warning(f"Rolling back {len(manifest.chunks)} chunk(s) of {manifest.name} after: {cause}")
        try:
            self.delete_chunks(manifest, collection)
        except OrphanedChunksError as e:
            logger.error(f"Rollback of {manifest.name} left orphaned chunks: {', '.join(e.failed_fids)}")
            return e.failed_fids

        logger.warning(f"Rolled back {len(manifest.chunks)} chunk(s) of {manifest.name}")
        return []
