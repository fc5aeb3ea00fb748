"""Shared pytest fixtures for all tests."""

import pytest

from client.config import Config
from client.seaweed import Seaweed
from tests.fake_cluster import FakeCluster


@pytest.fixture
def temp_config_dir(tmp_path):
    """
    Create temporary config directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to temporary .weed directory
    """
    config_dir = tmp_path / '.weed'
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def temp_config(temp_config_dir):
    """
    Create temporary config instance backed by a file.

    Args:
        temp_config_dir: Temporary config directory fixture

    Returns:
        Config instance with temp config file
    """
    return Config(temp_config_dir / 'config.json')


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def test_config():
    """In-memory config pointing at the fake cluster, 10-byte chunks, no retries."""
    return Config(
        master_host='master',
        master_port=9333,
        chunk_size_bytes=10,
        max_retries=0,
    )


@pytest.fixture
def seaweed(test_config, cluster):
    """Seaweed client wired to the fake cluster."""
    client = Seaweed(test_config, transport=cluster.transport)
    yield client
    client.close()


@pytest.fixture
def sample_file(tmp_path):
    """
    Create a small file that fits in one chunk.

    Returns:
        Path to sample text file
    """
    file_path = tmp_path / 'test.txt'
    file_path.write_text('hello')
    return file_path


@pytest.fixture
def large_file(tmp_path):
    """
    Create a 100-byte file, ten chunks at the test chunk size.

    Returns:
        Path to binary file
    """
    file_path = tmp_path / 'big.bin'
    file_path.write_bytes(bytes(range(100)))
    return file_path


@pytest.fixture
def multiple_sample_files(tmp_path):
    """
    Create multiple sample files for testing batch operations.

    Returns:
        List of Paths to sample files
    """
    files = []
    for i in range(3):
        file_path = tmp_path / f'test{i}.txt'
        file_path.write_text(f'Sample content {i}')
        files.append(file_path)
    return files
