"""Classify desired data sources against the live AppSync listing.

Each desired data source is matched by name against the remote data
sources and compared in canonical form:

- Excluded keys (remote-assigned ARN, API id, description) are dropped
  at the top level
- None values are dropped at every depth, so an absent field and an
  explicit null are equivalent
- Mappings compare independently of key order

Description changes never make a data source differ.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .models import Action, ActionMode, DataSourceSpec, NormalizedDataSource
from .normalizer import NormalizationError, normalize

logger = logging.getLogger(__name__)

# Keys ignored when deciding whether a remote data source needs an update
DEFAULT_EXCLUDED_KEYS: frozenset[str] = frozenset({"dataSourceArn", "apiId", "description"})


def canonicalize(value: Any) -> Any:
    """Reduce a payload to a comparable canonical form.

    Args:
        value: Arbitrary JSON-like value.

    Returns:
        Copy with None values removed from mappings and sequences
        converted to lists.
    """
    if isinstance(value, Mapping):
        return {
            str(key): canonicalize(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]
    return value


def equals_excluding(
    left: Mapping[str, Any],
    right: Mapping[str, Any],
    excluded_keys: Iterable[str] = DEFAULT_EXCLUDED_KEYS,
) -> bool:
    """Structural equality of two payloads ignoring the excluded top-level keys."""
    excluded = frozenset(excluded_keys)
    left_canonical = {k: v for k, v in canonicalize(left).items() if k not in excluded}
    right_canonical = {k: v for k, v in canonicalize(right).items() if k not in excluded}
    return left_canonical == right_canonical


def find_remote(name: str, remote: Sequence[Mapping[str, Any]]) -> Mapping[str, Any] | None:
    """Return the first remote data source with this name, if any."""
    for item in remote:
        if item.get("name") == name:
            return item
    return None


def classify(
    desired: NormalizedDataSource,
    remote: Sequence[Mapping[str, Any]],
    excluded_keys: Iterable[str] = DEFAULT_EXCLUDED_KEYS,
) -> Action:
    """Decide whether a desired data source must be created, updated or left alone.

    Args:
        desired: Normalized desired data source.
        remote: Fully materialized remote listing for the API.
        excluded_keys: Top-level keys left out of the comparison.

    Returns:
        Action with mode CREATE, UPDATE or IGNORE.
    """
    deployed = find_remote(desired.name, remote)
    if deployed is None:
        return Action(
            name=desired.name,
            type=desired.type,
            mode=ActionMode.CREATE,
            data_source=desired,
        )

    type_changed = deployed.get("type") != desired.type
    if type_changed:
        logger.warning(
            "Data source type differs from remote, updating in place",
            extra={
                "data_source": desired.name,
                "remote_type": deployed.get("type"),
                "desired_type": desired.type,
            },
        )

    if equals_excluding(desired.to_api_payload(), deployed, excluded_keys):
        mode = ActionMode.IGNORE
    else:
        mode = ActionMode.UPDATE

    return Action(
        name=desired.name,
        type=desired.type,
        mode=mode,
        data_source=desired,
        type_changed=type_changed,
    )


@dataclass
class ApplyPlan:
    """Classified apply actions plus the data sources that could not be normalized."""

    actions: list[Action] = field(default_factory=list)
    rejected: list[tuple[Action, NormalizationError]] = field(default_factory=list)


def plan_apply(
    desired: Iterable[DataSourceSpec],
    remote: Sequence[Mapping[str, Any]],
    default_region: str,
    excluded_keys: Iterable[str] = DEFAULT_EXCLUDED_KEYS,
) -> ApplyPlan:
    """Normalize and classify every desired data source, in input order.

    IGNORE actions are included; callers filter with Action.dispatchable.
    A data source that fails normalization does not stop the others: it is
    rejected with the create or update action it would have needed.
    """
    excluded = frozenset(excluded_keys)
    plan = ApplyPlan()
    for spec in desired:
        try:
            data_source = normalize(spec, default_region)
        except NormalizationError as e:
            deployed = find_remote(spec.name, remote)
            mode = ActionMode.CREATE if deployed is None else ActionMode.UPDATE
            plan.rejected.append((Action(name=spec.name, type=spec.type, mode=mode), e))
            continue
        plan.actions.append(classify(data_source, remote, excluded))
    return plan
