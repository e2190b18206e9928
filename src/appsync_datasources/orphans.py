"""Orphan detection against the prior deployment record.

An orphan is a {name, type} pair this tool created on an earlier run
that is no longer part of the desired set. A data source whose type
changed is an orphan under its old type.
"""

from __future__ import annotations

from collections.abc import Iterable

from .models import Action, ActionMode, DataSourceIdentity


def find_orphans(
    prior: Iterable[DataSourceIdentity],
    desired: Iterable[DataSourceIdentity],
) -> set[DataSourceIdentity]:
    """Return the prior identities missing from the desired set."""
    return set(prior) - set(desired)


def plan_prune(
    prior: Iterable[DataSourceIdentity],
    desired: Iterable[DataSourceIdentity],
) -> list[Action]:
    """Build delete actions for every orphan, sorted by name then type."""
    return [
        Action(name=orphan.name, type=orphan.type, mode=ActionMode.DELETE)
        for orphan in sorted(find_orphans(prior, desired))
    ]
