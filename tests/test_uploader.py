"""Tests for single-shot, chunked and batch uploads against the fake cluster."""

import io
import json

import pytest

from client.cancellation import CancelScope
from client.config import Config
from client.seaweed import Seaweed
from client.uploader import chunk_count, new_file_part, new_file_parts, read_bounded
from common.exceptions import (
    AllocationError,
    ChunkUploadError,
    IncompleteStreamError,
    LocationLookupError,
    OperationCancelledError,
    OrphanedChunksError,
    TransportError,
)
from common.manifest import ChunkManifest, ChunkRecord, decode_manifest
from common.types import FilePart
from tests.fake_cluster import PUBLIC_ADDRESS, StoredBlob, VOLUME_ADDRESS


def _client(cluster, **overrides):
    settings = {'master_host': 'master', 'master_port': 9333, 'chunk_size_bytes': 10, 'max_retries': 0}
    settings.update(overrides)
    config = Config(**settings)
    return Seaweed(config, transport=cluster.transport)


class FlakyStream(io.BytesIO):
    """Stream that fails once 30 bytes have been read."""

    def read(self, size=-1):
        if self.tell() >= 30:
            raise ValueError('stream broke')
        return super().read(size)


@pytest.fixture
def roomy_client(cluster):
    """Client whose chunk size fits every sample file in one blob."""
    with _client(cluster, chunk_size_bytes=1024) as client:
        yield client


class TestChunkCount:

    @pytest.mark.parametrize('size,chunk,expected', [
        (100, 10, 10),
        (101, 10, 11),
        (9, 10, 1),
        (0, 10, 0),
    ])
    def test_ceiling(self, size, chunk, expected):
        assert chunk_count(size, chunk) == expected

    def test_legacy_adds_one(self):
        assert chunk_count(100, 10, legacy=True) == 11
        assert chunk_count(101, 10, legacy=True) == 11


class TestReadBounded:

    def test_loops_over_short_reads(self):
        class Trickle(io.RawIOBase):
            def __init__(self, data):
                self.data = data

            def readable(self):
                return True

            def read(self, n=-1):
                step = min(3, n)
                piece, self.data = self.data[:step], self.data[step:]
                return piece

        assert read_bounded(Trickle(b'abcdefghij'), 8) == b'abcdefgh'

    def test_stops_at_eof(self):
        assert read_bounded(io.BytesIO(b'abc'), 10) == b'abc'


class TestNewFilePart:

    def test_plain_file(self, sample_file):
        fp = new_file_part(sample_file)
        try:
            assert fp.file_name == str(sample_file)
            assert fp.file_size == 5
            assert fp.mime_type == 'text/plain'
            assert fp.mod_time > 0
            assert fp.owns_reader
            assert not fp.is_gzipped
        finally:
            fp.release()
        assert fp.reader.closed

    def test_gz_suffix_is_stripped(self, tmp_path):
        path = tmp_path / 'data.txt.gz'
        path.write_bytes(b'\x1f\x8b...')

        fp = new_file_part(path)
        fp.release()

        assert fp.is_gzipped
        assert fp.file_name == str(tmp_path / 'data.txt')
        assert fp.mime_type == 'text/plain'

    def test_missing_file_closes_opened_parts(self, sample_file, tmp_path, monkeypatch):
        opened = []

        def tracking(path):
            fp = new_file_part(path)
            opened.append(fp)
            return fp

        monkeypatch.setattr('client.uploader.new_file_part', tracking)

        with pytest.raises(OSError):
            new_file_parts([sample_file, tmp_path / 'missing.txt'])

        assert len(opened) == 1
        assert opened[0].reader.closed


class TestSingleShotUpload:

    def test_small_file_uploads_as_one_blob(self, seaweed, cluster, sample_file):
        fid = seaweed.upload_file(sample_file)

        assert fid == '3,00000001'
        blob = cluster.blobs[fid]
        assert blob.data == b'hello'
        assert blob.filename == 'test.txt'
        assert not blob.is_manifest
        assert cluster.assign_calls == 1
        assert cluster.lookup_calls == 0

    def test_file_equal_to_chunk_size_is_not_chunked(self, seaweed, cluster, tmp_path):
        path = tmp_path / 'exact.bin'
        path.write_bytes(b'0123456789')

        fid = seaweed.upload_file(path)

        assert list(cluster.blobs) == [fid]
        assert cluster.blobs[fid].data == b'0123456789'

    def test_collection_and_ttl_sent_to_master(self, seaweed, cluster, sample_file):
        seaweed.upload_file(sample_file, collection='docs', ttl='1d')
        assert cluster.assign_requests == [{'count': '1', 'collection': 'docs', 'ttl': '1d'}]

    def test_gzipped_file_marks_part(self, seaweed, cluster, tmp_path):
        path = tmp_path / 'notes.txt.gz'
        path.write_bytes(b'\x1f\x8bpayload')

        fid = seaweed.upload_file(path)

        blob = cluster.blobs[fid]
        assert blob.filename == 'notes.txt'
        assert blob.headers['content-encoding'] == 'gzip'

    def test_owned_reader_closed_after_upload(self, seaweed, sample_file):
        fp = new_file_part(sample_file)
        seaweed.upload_file_part(fp)
        assert fp.reader.closed

    def test_borrowed_reader_left_open(self, seaweed, cluster):
        reader = io.BytesIO(b'abc')
        fp = FilePart(reader=reader, file_name='a.bin', file_size=3)

        fid = seaweed.upload_file_part(fp)

        assert not reader.closed
        assert cluster.blobs[fid].data == b'abc'

    def test_owned_reader_closed_when_assign_fails(self, seaweed, cluster, sample_file):
        cluster.refuse_assign = 'No free volumes left!'
        fp = new_file_part(sample_file)

        with pytest.raises(AllocationError, match='No free volumes left!'):
            seaweed.upload_file_part(fp)
        assert fp.reader.closed

    def test_preassigned_fid_resolved_through_master(self, seaweed, cluster):
        fp = FilePart(reader=io.BytesIO(b'abc'), file_name='a.bin', file_size=3, fid='3,000000ff')

        fid = seaweed.upload_file_part(fp)

        assert fid == '3,000000ff'
        assert fp.server == VOLUME_ADDRESS
        assert cluster.assign_calls == 0
        assert cluster.lookup_calls == 1


class TestChunkedUpload:

    def test_large_file_split_into_chunks_and_manifest(self, seaweed, cluster, large_file):
        fid = seaweed.upload_file(large_file)

        manifest_blob = cluster.blobs[fid]
        assert manifest_blob.is_manifest
        assert manifest_blob.content_type == 'application/json'

        manifest = decode_manifest(manifest_blob.data)
        assert manifest.name == 'big.bin'
        assert manifest.size == 100
        assert len(manifest.chunks) == 10
        assert [chunk.offset for chunk in manifest.chunks] == list(range(0, 100, 10))
        assert sum(chunk.size for chunk in manifest.chunks) == manifest.size

        for index, chunk in enumerate(manifest.chunks):
            blob = cluster.blobs[chunk.fid]
            assert blob.filename == f'big.bin-{index + 1}'
            assert blob.content_type == 'application/octet-stream'
            assert blob.data == large_file.read_bytes()[chunk.offset:chunk.offset + chunk.size]

        assert cluster.assign_calls == 11

    def test_last_chunk_holds_remainder(self, seaweed, cluster, tmp_path):
        path = tmp_path / 'odd.bin'
        path.write_bytes(b'x' * 25)

        fid = seaweed.upload_file(path)

        manifest = decode_manifest(cluster.blobs[fid].data)
        assert [chunk.size for chunk in manifest.chunks] == [10, 10, 5]

    def test_download_reassembles(self, seaweed, large_file):
        fid = seaweed.upload_file(large_file)

        dest = io.BytesIO()
        seaweed.download_file(fid, dest)

        assert dest.getvalue() == large_file.read_bytes()

    def test_compressed_manifest(self, cluster, large_file):
        with _client(cluster, compress_manifest=True) as client:
            fid = client.upload_file(large_file)
            manifest = client.read_manifest(fid)

        assert cluster.blobs[fid].headers['content-encoding'] == 'gzip'
        assert manifest.size == 100
        assert len(manifest.chunks) == 10

    def test_legacy_chunk_count_uploads_trailing_empty_chunk(self, cluster, large_file):
        with _client(cluster, legacy_chunk_count=True) as client:
            fid = client.upload_file(large_file)

        manifest = decode_manifest(cluster.blobs[fid].data)
        assert len(manifest.chunks) == 11
        assert manifest.chunks[-1].size == 0
        assert manifest.chunks[-1].offset == 100
        assert sum(chunk.size for chunk in manifest.chunks) == 100

    def test_parallel_workers_keep_chunk_order(self, cluster, large_file):
        with _client(cluster, upload_workers=4) as client:
            fid = client.upload_file(large_file)
            dest = io.BytesIO()
            client.download_file(fid, dest)

        manifest = decode_manifest(cluster.blobs[fid].data)
        assert [chunk.offset for chunk in manifest.chunks] == list(range(0, 100, 10))
        assert dest.getvalue() == large_file.read_bytes()


class TestRollback:

    def test_failed_chunk_deletes_earlier_chunks(self, seaweed, cluster, large_file):
        cluster.fail_upload_names = {'big.bin-6'}

        with pytest.raises(ChunkUploadError) as exc_info:
            seaweed.upload_file(large_file)

        assert exc_info.value.chunk_index == 5
        assert exc_info.value.orphaned_fids == []
        assert len(cluster.deleted) == 5
        assert cluster.blobs == {}

    def test_manifest_publish_failure_deletes_all_chunks(self, seaweed, cluster, large_file):
        cluster.fail_manifest_publish = True

        with pytest.raises(TransportError, match='disk full'):
            seaweed.upload_file(large_file)

        assert len(cluster.deleted) == 10
        assert cluster.blobs == {}

    def test_undeletable_chunk_reported_as_orphan(self, seaweed, cluster, large_file):
        cluster.fail_upload_names = {'big.bin-3'}
        cluster.fail_delete_fids = {'3,00000002'}

        with pytest.raises(ChunkUploadError) as exc_info:
            seaweed.upload_file(large_file)

        assert exc_info.value.orphaned_fids == ['3,00000002']
        assert list(cluster.chunk_blobs) == ['3,00000002']

    def test_parallel_failure_rolls_back_everything(self, cluster, large_file):
        cluster.fail_upload_names = {'big.bin-2'}

        with _client(cluster, upload_workers=3) as client:
            with pytest.raises(ChunkUploadError) as exc_info:
                client.upload_file(large_file)

        assert exc_info.value.chunk_index == 1
        assert cluster.blobs == {}

    def test_short_stream_rolls_back(self, seaweed, cluster):
        fp = FilePart(reader=io.BytesIO(b'y' * 50), file_name='short.bin', file_size=100)

        with pytest.raises(IncompleteStreamError):
            seaweed.upload_file_part(fp)

        assert len(cluster.deleted) == 5
        assert cluster.blobs == {}

    def test_reader_error_rolls_back_and_propagates(self, seaweed, cluster):
        fp = FilePart(reader=FlakyStream(b'f' * 100), file_name='flaky.bin', file_size=100)

        with pytest.raises(ValueError, match='stream broke'):
            seaweed.upload_file_part(fp)

        assert len(cluster.deleted) == 3
        assert cluster.blobs == {}

    def test_cancellation_mid_upload_rolls_back(self, seaweed, cluster):
        scope = CancelScope()

        class CancellingReader(io.BytesIO):
            def read(self, size=-1):
                data = super().read(size)
                if self.tell() >= 30:
                    scope.cancel()
                return data

        fp = FilePart(reader=CancellingReader(b'z' * 100), file_name='c.bin', file_size=100)

        with pytest.raises(OperationCancelledError):
            seaweed.uploader.upload_part(fp, scope=scope)

        assert len(cluster.deleted) == 2
        assert cluster.blobs == {}

    def test_expired_scope_fails_before_assign(self, seaweed, cluster, sample_file):
        scope = CancelScope(timeout=0)

        with pytest.raises(OperationCancelledError, match='deadline'):
            seaweed.upload_file(sample_file, scope=scope)
        assert cluster.assign_calls == 0


class TestDelete:

    def test_delete_file(self, seaweed, cluster, sample_file):
        fid = seaweed.upload_file(sample_file)
        seaweed.delete_file(fid)

        assert cluster.deleted == [fid]
        assert fid not in cluster.blobs

    def test_delete_missing_file_succeeds(self, seaweed, cluster):
        seaweed.delete_file('3,0000abcd')
        assert cluster.deleted == ['3,0000abcd']

    def test_delete_failure_names_url(self, seaweed, cluster):
        cluster.fail_delete_fids = {'3,01'}

        with pytest.raises(TransportError, match=f'Failed to delete http://{VOLUME_ADDRESS}/3,01'):
            seaweed.delete_file('3,01')

    def test_delete_lookup_failure_names_fid(self, seaweed, cluster):
        cluster.lookup_error = 'volume id 3 not found'

        with pytest.raises(LocationLookupError, match='^Failed to lookup 3,01: volume id 3 not found$'):
            seaweed.delete_file('3,01')

        assert cluster.deleted == []

    def test_delete_chunks_continues_past_failures(self, seaweed, cluster):
        fids = ['3,0a', '3,0b', '3,0c', '3,0d']
        for fid in fids:
            cluster.blobs[fid] = StoredBlob(filename=fid, data=b'x')
        cluster.fail_delete_fids = {'3,0b'}
        manifest = ChunkManifest(
            name='f', size=4, chunks=[ChunkRecord(fid=fid, offset=i, size=1) for i, fid in enumerate(fids)]
        )

        with pytest.raises(OrphanedChunksError) as exc_info:
            seaweed.delete_chunks(manifest)

        assert exc_info.value.failed_fids == ['3,0b']
        assert exc_info.value.total == 4
        assert 'Not all chunks deleted' in str(exc_info.value)
        assert cluster.deleted == ['3,0a', '3,0c', '3,0d']


class TestReplace:

    def test_replace_overwrites_same_fid(self, seaweed, cluster, sample_file, tmp_path):
        fid = seaweed.upload_file(sample_file)
        new_path = tmp_path / 'new.txt'
        new_path.write_text('replaced')

        assert seaweed.replace_file(fid, new_path) == fid
        assert cluster.blobs[fid].data == b'replaced'
        assert cluster.deleted == []

    def test_replace_delete_first_on_missing_object(self, seaweed, cluster, sample_file):
        assert seaweed.replace_file('3,000000aa', sample_file, delete_first=True) == '3,000000aa'

        assert cluster.deleted == ['3,000000aa']
        assert cluster.blobs['3,000000aa'].data == b'hello'

    def test_replace_ignores_failed_delete(self, seaweed, cluster, sample_file):
        cluster.fail_delete_fids = {'3,000000aa'}

        seaweed.replace_file('3,000000aa', sample_file, delete_first=True)

        assert cluster.blobs['3,000000aa'].data == b'hello'


class TestBatchUpload:

    def test_batch_shares_one_assignment(self, roomy_client, cluster, multiple_sample_files):
        results = roomy_client.batch_upload_files(multiple_sample_files, collection='c1', ttl='5m')

        assert cluster.assign_calls == 1
        assert cluster.assign_requests[0]['count'] == '3'
        assert [r.fid for r in results] == ['3,00000001', '3,00000001_1', '3,00000001_2']
        assert all(r.ok for r in results)
        assert results[0].file_url == f'{PUBLIC_ADDRESS}/3,00000001'
        assert results[2].size == len('Sample content 2')
        assert cluster.blobs['3,00000001_1'].data == b'Sample content 1'
        assert cluster.chunk_blobs.keys() == cluster.blobs.keys()

    def test_batch_allocation_failure_marks_every_file(self, seaweed, cluster, multiple_sample_files):
        cluster.refuse_assign = 'No free volumes left!'
        parts = new_file_parts(multiple_sample_files)

        results = seaweed.batch_upload_file_parts(parts)

        assert len(results) == 3
        assert all(r.error == 'No free volumes left!' for r in results)
        assert all(r.fid == '' for r in results)
        assert all(fp.reader.closed for fp in parts)
        assert cluster.upload_calls == 0

    def test_batch_isolates_failures(self, roomy_client, cluster, multiple_sample_files):
        cluster.fail_upload_names = {'test1.txt'}

        results = roomy_client.batch_upload_files(multiple_sample_files)

        assert [r.ok for r in results] == [True, False, True]
        assert 'disk full' in results[1].error
        assert '3,00000001_2' in cluster.blobs
        assert cluster.upload_calls == 3

    def test_batch_isolates_reader_errors(self, seaweed, cluster):
        parts = [
            FilePart(reader=io.BytesIO(b'hello'), file_name='a.txt', file_size=5),
            FilePart(reader=FlakyStream(b'f' * 100), file_name='flaky.bin', file_size=100),
            FilePart(reader=io.BytesIO(b'world'), file_name='c.txt', file_size=5),
        ]

        results = seaweed.batch_upload_file_parts(parts)

        assert [r.ok for r in results] == [True, False, True]
        assert 'stream broke' in results[1].error
        assert len(cluster.deleted) == 3
        assert cluster.blobs['3,00000001_2'].data == b'world'

    def test_batch_chunks_large_file(self, seaweed, cluster, large_file):
        parts = [
            FilePart(reader=io.BytesIO(b'hello'), file_name='a.txt', file_size=5),
            new_file_part(large_file),
        ]

        results = seaweed.batch_upload_file_parts(parts)

        assert all(r.ok for r in results)
        assert cluster.blobs['3,00000001'].data == b'hello'
        manifest_blob = cluster.blobs['3,00000001_1']
        assert manifest_blob.is_manifest
        manifest = decode_manifest(manifest_blob.data)
        assert manifest.size == 100
        assert len(manifest.chunks) == 10
        assert len(cluster.chunk_blobs) == 11
        dest = io.BytesIO()
        seaweed.download_file('3,00000001_1', dest)
        assert dest.getvalue() == large_file.read_bytes()

    def test_batch_sets_ttl_on_each_part(self, seaweed, multiple_sample_files):
        parts = new_file_parts(multiple_sample_files)
        seaweed.batch_upload_file_parts(parts, collection='c1', ttl='5m')

        assert all(fp.ttl == '5m' and fp.collection == 'c1' for fp in parts)

    def test_empty_batch(self, seaweed, cluster):
        assert seaweed.batch_upload_file_parts([]) == []
        assert cluster.assign_calls == 0

    def test_submit_result_to_dict(self, roomy_client, multiple_sample_files):
        result = roomy_client.batch_upload_files(multiple_sample_files[:1])[0]

        assert json.loads(json.dumps(result.to_dict())) == {
            'fileName': str(multiple_sample_files[0]),
            'fileUrl': f'{PUBLIC_ADDRESS}/3,00000001',
            'fid': '3,00000001',
            'size': len('Sample content 0'),
        }
