"""Configuration constants for entry-tree."""

import os
from pathlib import Path

# Environment variable overriding the data directory.
DATA_DIR_ENV: str = "ENTRY_TREE_DIR"

# Directory with the database. First directory which is found is used.
DATA_DIRECTORIES: list[Path] = [
    Path("~/.local/share/entry-tree").expanduser(),
    Path("~/.entry-tree").expanduser(),
    Path("~/.config/entry-tree").expanduser(),
]

DEFAULT_DB_NAME: str = "entries.db"

# Title of the root entry created by the `seed` command.
SAMPLE_ROOT_TITLE: str = "Sample Project"


def resolve_data_directory() -> Path:
    """Return the data directory: env override, else first existing, else first listed."""
    override = os.environ.get(DATA_DIR_ENV)
    if override:
        return Path(override).expanduser()
    for candidate in DATA_DIRECTORIES:
        if candidate.is_dir():
            return candidate
    return DATA_DIRECTORIES[0]


def resolve_db_path(data_dir: Path | None = None) -> Path:
    return (data_dir or resolve_data_directory()) / DEFAULT_DB_NAME
