"""Prior deployment record persistence.

The record is the set of {name, type} pairs created by the last
successful run. It is stored as YAML:

    apiId: abcdefghijklmnopqrstuvwxyz
    dataSources:
      - name: orders
        type: AMAZON_DYNAMODB

Writes go to a temporary file in the same directory that then replaces
the record, so a crash never leaves a truncated record behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path

import yaml

from .config import MAX_STATE_FILE_SIZE_BYTES
from .models import DataSourceIdentity
from .yaml_file import YamlFileError, read_yaml

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Raised when the deployment record cannot be read or written."""

    pass


class DeploymentStateStore:
    """File-backed prior deployment record for one AppSync API."""

    def __init__(self, path: Path, api_id: str) -> None:
        self._path = path
        self._api_id = api_id

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> set[DataSourceIdentity]:
        """Read the recorded identities; a missing record is an empty set.

        Raises:
            StateStoreError: If the record is unreadable, malformed, or
                belongs to another API.
        """
        if not self._path.exists():
            logger.info(
                "No deployment record found, starting empty",
                extra={"path": str(self._path)},
            )
            return set()

        try:
            raw = read_yaml(self._path, MAX_STATE_FILE_SIZE_BYTES, "Deployment record")
        except YamlFileError as e:
            raise StateStoreError(str(e)) from e

        if raw is None:
            return set()
        if not isinstance(raw, dict):
            raise StateStoreError(f"Deployment record must be a YAML mapping: {self._path}")

        recorded_api = raw.get("apiId")
        if recorded_api and recorded_api != self._api_id:
            raise StateStoreError(
                f"Deployment record {self._path} belongs to API {recorded_api}, not {self._api_id}"
            )

        entries = raw.get("dataSources") or []
        if not isinstance(entries, list):
            raise StateStoreError(f"dataSources must be a list: {self._path}")

        try:
            return {DataSourceIdentity.from_dict(entry) for entry in entries}
        except (AttributeError, ValueError) as e:
            raise StateStoreError(f"Malformed entry in {self._path}: {e}") from e

    def save(self, identities: Iterable[DataSourceIdentity]) -> None:
        """Replace the record with the given identities.

        Raises:
            StateStoreError: If the record cannot be written.
        """
        document = {
            "apiId": self._api_id,
            "dataSources": [identity.to_dict() for identity in sorted(set(identities))],
        }
        content = yaml.safe_dump(document, sort_keys=False)

        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{self._path.name}.")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(content)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateStoreError(f"Failed to write deployment record {self._path}: {e}") from e

        logger.info(
            "Saved deployment record",
            extra={"path": str(self._path), "data_source_count": len(document["dataSources"])},
        )
