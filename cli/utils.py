"""Output formatting helpers for CLI commands."""

from common.exceptions import ChunkUploadError
from common.manifest import ChunkManifest
from common.types import SubmitResult


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in bytes to human-readable format with appropriate unit.

    Uses binary units (1024-based): B, KiB, MiB, GiB, TiB.

    Args:
        size_bytes: File size in bytes

    Returns:
        Formatted string with size and unit (e.g., "1.50 MiB", "512 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"

    size = float(size_bytes)
    for unit in ('KiB', 'MiB', 'GiB', 'TiB'):
        size /= 1024.0
        if size < 1024.0:
            break
    return f"{size:.2f} {unit}"


def format_error(error: Exception) -> str:
    """Render a client error, listing chunks a failed rollback left behind."""
    message = f"Error: {error}"
    if isinstance(error, ChunkUploadError) and error.orphaned_fids:
        message += f"\n  Orphaned chunks left on the cluster: {', '.join(error.orphaned_fids)}"
    return message


def format_submit_result(result: SubmitResult) -> str:
    if result.ok:
        return f"Uploaded: {result.file_name} -> {result.fid} ({format_file_size(result.size)})"
    return f"Error uploading {result.file_name}: {result.error}"


def format_manifest(fid: str, manifest: ChunkManifest) -> str:
    """
    Render a chunk manifest, one line per chunk in offset order.

    Args:
        fid: File id the manifest is stored under
        manifest: Decoded manifest

    Returns:
        Multi-line description
    """
    lines = [
        f"Manifest {fid}: {manifest.name or '(unnamed)'}",
        f"  MIME: {manifest.mime or '-'}",
        f"  Size: {format_file_size(manifest.size)}",
        f"  Chunks: {len(manifest.chunks)}",
    ]
    for chunk in manifest.chunks:
        lines.append(f"    - {chunk.fid} @ {chunk.offset} ({format_file_size(chunk.size)})")
    return '\n'.join(lines)
