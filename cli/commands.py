"""Command handler functions for CLI operations."""

from pathlib import Path
from typing import Optional

from cli.constants import CONFIG_DIR_NAME
from cli.models import (
    DeleteCommand,
    DownloadCommand,
    GrowCommand,
    ManifestCommand,
    ReplaceCommand,
    UploadCommand,
)
from cli.utils import format_error, format_file_size, format_manifest, format_submit_result
from client.config import Config
from client.seaweed import Seaweed
from common.exceptions import WeedError
from common.logging_config import get_logger

logger = get_logger(__name__)


_client: Optional[Seaweed] = None
_config_path: Optional[Path] = None
_master_address: Optional[str] = None


def configure_client(config_path: Optional[Path] = None, master_address: Optional[str] = None) -> None:
    """
    Set where the global client reads its configuration and which master it talks to.

    Takes effect for the next client created by get_client().

    Args:
        config_path: Config JSON file (defaults to ~/.weed/config.json)
        master_address: Master in "HOST:PORT" format, overriding the config file
    """
    global _config_path, _master_address
    close_client()
    _config_path = config_path
    _master_address = master_address


def get_client() -> Seaweed:
    """
    Get or create global Seaweed client instance.

    Returns:
        Seaweed instance
    """
    global _client
    if _client is None:
        logger.debug("Creating new Seaweed client instance")
        overrides = {}
        if _master_address:
            host, _, port = _master_address.rpartition(":")
            overrides = {"master_host": host, "master_port": int(port)}
        config = Config(_config_path or Path.home() / CONFIG_DIR_NAME / "config.json", **overrides)
        _client = Seaweed(config)
    return _client


def close_client() -> None:
    """Close the global client if one was created."""
    global _client
    if _client is not None:
        _client.close()
        _client = None


def handle_upload(cmd: UploadCommand, client: Optional[Seaweed] = None) -> str:
    """
    Handle 'upload' command.

    A single file is uploaded on its own; several files share one assignment.

    Args:
        cmd: UploadCommand with file_list, collection and ttl
        client: Optional Seaweed client for dependency injection (testing)

    Returns:
        Upload results, one line per file
    """
    logger.info(f"Executing upload command: {len(cmd.file_list)} file(s), collection={cmd.collection!r}")
    if client is None:
        client = get_client()

    for file_path in cmd.file_list:
        if not Path(file_path).is_file():
            return f"Error: File not found: {file_path}"

    try:
        if len(cmd.file_list) == 1:
            file_path = cmd.file_list[0]
            size = Path(file_path).stat().st_size
            fid = client.upload_file(file_path, cmd.collection, cmd.ttl)
            return f"Uploaded: {file_path} -> {fid} ({format_file_size(size)})"

        results = client.batch_upload_files(list(cmd.file_list), cmd.collection, cmd.ttl)
    except WeedError as e:
        logger.warning(f"Upload failed: {e}")
        return format_error(e)
    except OSError as e:
        return f"Error reading file: {e}"

    return '\n'.join(format_submit_result(result) for result in results)


def handle_replace(cmd: ReplaceCommand, client: Optional[Seaweed] = None) -> str:
    """
    Handle 'replace' command.

    Args:
        cmd: ReplaceCommand with fid, file_path and delete_first
        client: Optional Seaweed client for dependency injection (testing)

    Returns:
        Success or error message
    """
    if client is None:
        client = get_client()

    if not Path(cmd.file_path).is_file():
        return f"Error: File not found: {cmd.file_path}"

    try:
        fid = client.replace_file(cmd.fid, cmd.file_path, cmd.delete_first)
    except WeedError as e:
        return format_error(e)
    except OSError as e:
        return f"Error reading file: {e}"
    return f"Replaced: {fid} with {cmd.file_path}"


def handle_delete(cmd: DeleteCommand, client: Optional[Seaweed] = None) -> str:
    """
    Handle 'delete' command.

    Args:
        cmd: DeleteCommand with fids
        client: Optional Seaweed client for dependency injection (testing)

    Returns:
        One line per file id
    """
    if client is None:
        client = get_client()

    lines = []
    for fid in cmd.fids:
        try:
            client.delete_file(fid)
            lines.append(f"Deleted: {fid}")
        except WeedError as e:
            lines.append(f"Error deleting {fid}: {e}")
    return '\n'.join(lines)


def handle_download(cmd: DownloadCommand, client: Optional[Seaweed] = None) -> str:
    """
    Handle 'download' command.

    Without an output path the file is saved in the current directory under
    the name suggested by the server, falling back to the file id.

    Args:
        cmd: DownloadCommand with fid and optional output_path
        client: Optional Seaweed client for dependency injection (testing)

    Returns:
        Success or error message with download details
    """
    logger.info(f"Executing download command: fid={cmd.fid} output_path={cmd.output_path}")
    if client is None:
        client = get_client()

    fallback_name = cmd.fid.replace(',', '_')
    target = Path(cmd.output_path) if cmd.output_path else None
    partial = Path(f"{target}.part") if target else Path.cwd() / f".{fallback_name}.part"

    try:
        partial.parent.mkdir(parents=True, exist_ok=True)
        with open(partial, 'wb') as f:
            filename = client.download_file(cmd.fid, f)
        final = target or Path.cwd() / (Path(filename).name if filename else fallback_name)
        partial.replace(final)
    except WeedError as e:
        partial.unlink(missing_ok=True)
        return format_error(e)
    except OSError as e:
        partial.unlink(missing_ok=True)
        return f"Error writing file: {e}"

    return f"Downloaded: {cmd.fid} ({format_file_size(final.stat().st_size)})\nSaved to: {final.absolute()}"


def handle_manifest(cmd: ManifestCommand, client: Optional[Seaweed] = None) -> str:
    """
    Handle 'manifest' command.

    Args:
        cmd: ManifestCommand with fid
        client: Optional Seaweed client for dependency injection (testing)

    Returns:
        Formatted manifest
    """
    if client is None:
        client = get_client()

    try:
        manifest = client.read_manifest(cmd.fid)
    except WeedError as e:
        return format_error(e)

    return format_manifest(cmd.fid, manifest)


def handle_grow(cmd: GrowCommand, client: Optional[Seaweed] = None) -> str:
    """
    Handle 'grow' command.

    Args:
        cmd: GrowCommand with volume growth arguments
        client: Optional Seaweed client for dependency injection (testing)

    Returns:
        Success or error message
    """
    if client is None:
        client = get_client()

    try:
        client.grow(cmd.count, cmd.collection, cmd.replication, cmd.data_center, cmd.ttl)
    except WeedError as e:
        return format_error(e)
    return "Volume grow requested successfully."
