"""Spec file loading with validation.

The spec file is a YAML mapping with an optional default `region` and a
`dataSources` list. Input validation is performed at the boundary: a spec
that loads is a valid DataSourcesSpec.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import DataSourcesSpec
from .yaml_file import YamlFileError, read_yaml

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


def _format_validation_error(spec_path: Path, error: ValidationError) -> str:
    lines = [
        f"  - {'.'.join(str(part) for part in detail['loc'])}: {detail['msg']}"
        for detail in error.errors()
    ]
    return f"Validation failed for {spec_path}:\n" + "\n".join(lines)


def load_spec(spec_path: Path) -> DataSourcesSpec:
    """Load and validate the desired data source set from YAML.

    Args:
        spec_path: Path to the spec file.

    Returns:
        Validated spec instance.

    Raises:
        SpecLoadError: If the spec cannot be loaded or fails validation.
    """
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    try:
        raw_data = read_yaml(spec_path, MAX_SPEC_FILE_SIZE_BYTES, "Spec file")
    except YamlFileError as e:
        raise SpecLoadError(str(e)) from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {spec_path}")

    try:
        spec = DataSourcesSpec.model_validate(raw_data)
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(spec_path, e)) from e

    logger.info(
        "Loaded spec with %d data source(s) from %s",
        len(spec.data_sources),
        spec_path,
    )
    return spec
