"""Command parser for CLI input."""

import shlex

from cli.models import (
    CommandRequest,
    DeleteCommand,
    DownloadCommand,
    GrowCommand,
    ManifestCommand,
    ReplaceCommand,
    UploadCommand,
)


class ParseError(Exception):
    """Raised when command parsing fails."""

    pass


def parse_command(input_line: str) -> CommandRequest:
    """Parse user input into a CommandRequest object.

    Args:
        input_line: Raw user input from REPL

    Returns:
        CommandRequest object (one of Upload/Replace/Delete/Download/Manifest/Grow)

    Raises:
        ParseError: If command syntax is invalid
    """
    if not input_line.strip():
        raise ParseError("Empty command")

    try:
        tokens = shlex.split(input_line)
    except ValueError as e:
        raise ParseError(f"Invalid syntax: {e}")

    if not tokens:
        raise ParseError("Empty command")

    command_name = tokens[0]

    if command_name == "upload":
        return _parse_upload(tokens[1:])
    elif command_name == "replace":
        return _parse_replace(tokens[1:])
    elif command_name == "delete":
        return _parse_delete(tokens[1:])
    elif command_name == "download":
        return _parse_download(tokens[1:])
    elif command_name == "manifest":
        return _parse_manifest(tokens[1:])
    elif command_name == "grow":
        return _parse_grow(tokens[1:])
    else:
        raise ParseError(f"Unknown command: {command_name}")


def _split_options(
    command: str,
    args: list[str],
    value_options: tuple[str, ...] = (),
    flag_options: tuple[str, ...] = (),
) -> tuple[list[str], dict[str, str], set[str]]:
    """Separate positional arguments from --options.

    Returns:
        Tuple of (positional args, option values, flags present)
    """
    positional = []
    values: dict[str, str] = {}
    flags: set[str] = set()

    index = 0
    while index < len(args):
        arg = args[index]
        if arg in value_options:
            if index + 1 >= len(args):
                raise ParseError(f"{command}: {arg} requires a value")
            values[arg] = args[index + 1]
            index += 2
            continue
        if arg in flag_options:
            flags.add(arg)
        elif arg.startswith("--"):
            raise ParseError(f"{command}: unknown option {arg}")
        else:
            positional.append(arg)
        index += 1

    return positional, values, flags


def _parse_upload(args: list[str]) -> UploadCommand:
    """Parse 'upload <file>... [--collection C] [--ttl T]' command."""
    files, values, _ = _split_options("upload", args, value_options=("--collection", "--ttl"))
    if not files:
        raise ParseError("upload requires at least one file")

    return UploadCommand(
        file_list=tuple(files),
        collection=values.get("--collection", ""),
        ttl=values.get("--ttl", ""),
    )


def _parse_replace(args: list[str]) -> ReplaceCommand:
    """Parse 'replace <fid> <file> [--delete-first]' command."""
    positional, _, flags = _split_options("replace", args, flag_options=("--delete-first",))
    if len(positional) != 2:
        raise ParseError("replace requires exactly 2 arguments: <fid> <file>")

    fid, file_path = positional
    return ReplaceCommand(fid=fid, file_path=file_path, delete_first="--delete-first" in flags)


def _parse_delete(args: list[str]) -> DeleteCommand:
    """Parse 'delete <fid>...' command."""
    if not args:
        raise ParseError("delete requires at least one file id")

    return DeleteCommand(fids=tuple(args))


def _parse_download(args: list[str]) -> DownloadCommand:
    """Parse 'download <fid> [output_path]' command."""
    if not 1 <= len(args) <= 2:
        raise ParseError("download requires 1 or 2 arguments: <fid> [output_path]")

    fid = args[0]
    output_path = args[1] if len(args) > 1 else None

    return DownloadCommand(fid=fid, output_path=output_path)


def _parse_manifest(args: list[str]) -> ManifestCommand:
    """Parse 'manifest <fid>' command."""
    if len(args) != 1:
        raise ParseError("manifest requires exactly 1 argument: <fid>")

    return ManifestCommand(fid=args[0])


def _parse_grow(args: list[str]) -> GrowCommand:
    """Parse 'grow [--count N] [--collection C] [--replication R] [--data-center D] [--ttl T]'."""
    positional, values, _ = _split_options(
        "grow",
        args,
        value_options=("--count", "--collection", "--replication", "--data-center", "--ttl"),
    )
    if positional:
        raise ParseError(f"grow takes no positional arguments, got: {' '.join(positional)}")

    count_text = values.get("--count", "0")
    try:
        count = int(count_text)
    except ValueError:
        raise ParseError(f"grow: --count must be an integer, got {count_text!r}")
    if count < 0:
        raise ParseError("grow: --count must not be negative")

    return GrowCommand(
        count=count,
        collection=values.get("--collection", ""),
        replication=values.get("--replication", ""),
        data_center=values.get("--data-center", ""),
        ttl=values.get("--ttl", ""),
    )
