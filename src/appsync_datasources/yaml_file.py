"""Size-limited YAML file reading for the spec file and the deployment record."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


class YamlFileError(Exception):
    """Raised when a YAML file is too large, unreadable, or not valid YAML."""

    pass


def read_yaml(path: Path, max_size_bytes: int, label: str) -> Any:
    """Parse a YAML file with `yaml.safe_load` after checking its size.

    Args:
        path: File to read.
        max_size_bytes: Largest accepted file size.
        label: What the file is, for error messages (e.g. "Spec file").

    Returns:
        The parsed document; None for an empty file.

    Raises:
        YamlFileError: If the file is too large, cannot be read, or is invalid YAML.
    """
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise YamlFileError(f"Failed to stat {path}: {e}") from e

    if file_size > max_size_bytes:
        raise YamlFileError(f"{label} exceeds maximum size of {max_size_bytes} bytes: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise YamlFileError(f"Failed to read {path}: {e}") from e

    try:
        return yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise YamlFileError(f"Invalid YAML in {path}: {e}") from e
