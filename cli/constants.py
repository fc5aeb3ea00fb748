"""CLI constants and configuration."""

from prompt_toolkit.styles import Style

COMMANDS = ["upload", "replace", "delete", "download", "manifest", "grow", "clear", "exit", "help"]

STYLE = Style.from_dict(
    {
        "prompt": "#2E9E5B bold",
        "command": "#0088ff bold",
    }
)

GREEN = "\033[38;2;46;158;91m"
RESET = "\033[0m"

WELCOME_TITLE = f"{GREEN}weed-client{RESET} - chunked uploads for master/volume blob stores"
WELCOME_HELP = "Type 'help' for commands or 'exit' to quit.\n"

PROMPT_TEXT = "weed> "

CONFIG_DIR_NAME = ".weed"

HELP_TEXT = """Available commands:
  upload <file>... [--collection C] [--ttl T]   Upload files (several files share one assignment)
  replace <fid> <file> [--delete-first]         Replace the content stored under a file id
  delete <fid>...                               Delete files by id
  download <fid> [output_path]                  Download a file (default: ./<server filename>)
  manifest <fid>                                Show the chunk manifest of a chunked file
  grow [--count N] [--collection C] [--replication R] [--data-center D] [--ttl T]
                                                Ask the master to grow volumes
  clear                                         Clear screen and redisplay welcome message
  help                                          Show this help
  exit                                          Exit REPL

Examples:
  upload report.pdf
  upload a.txt b.txt c.txt --collection docs --ttl 3d
  replace 3,01637037d6 report-v2.pdf --delete-first
  download 3,01637037d6 copy.pdf
  manifest 3,01637037d6
  grow --count 2 --replication 001"""
