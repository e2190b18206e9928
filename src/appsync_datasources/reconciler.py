"""Reconciliation of AppSync data sources.

A run is two batches:
1. Prune: delete data sources recorded on an earlier run that are no
   longer desired (orphans). Deleting an already absent data source is
   a successful no-op.
2. Apply: fetch the live listing, classify every desired data source,
   and create or update the ones that differ.

Prune runs first and the listing is fetched after it, so a data source
whose type changed is deleted under its old type before it is created
under the new one. The batches are otherwise independent: a failure in
one never stops the other from running.

Within a batch every operation is issued concurrently. Each outcome is
recorded per data source; a failed operation fails its batch, and the
run raises ReconcileError once both batches have finished. A data source
that cannot be normalized is reported as a failed outcome of the apply
batch and the rest of the batch is still dispatched. Nothing is retried
or rolled back.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .client import AppSyncDataSourceClient, DataSourceNotFoundError, RemoteOperationError
from .comparator import DEFAULT_EXCLUDED_KEYS, plan_apply
from .models import Action, ActionMode, DataSourceIdentity, DataSourceSpec
from .normalizer import is_supported_type
from .orphans import plan_prune

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    """Result of dispatching a single action."""

    SUCCEEDED = "succeeded"
    ALREADY_ABSENT = "already_absent"  # Delete of a data source that was already gone
    FAILED = "failed"
    PLANNED = "planned"  # Dry run, not dispatched


@dataclass(frozen=True)
class OperationOutcome:
    """Outcome of one dispatched (or planned) action."""

    action: Action
    status: OutcomeStatus
    error: Exception | None = None

    @property
    def name(self) -> str:
        return self.action.name

    @property
    def mode(self) -> ActionMode:
        return self.action.mode


@dataclass
class ReconcileResult:
    """Result of a single reconciliation run."""

    api_id: str
    dry_run: bool = False
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    prune_outcomes: list[OperationOutcome] = field(default_factory=list)
    apply_outcomes: list[OperationOutcome] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)  # Names already in sync
    unsupported: list[str] = field(default_factory=list)  # Names with an unknown type
    errors: list[Exception] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def outcomes(self) -> list[OperationOutcome]:
        """All outcomes, prune batch first."""
        return [*self.prune_outcomes, *self.apply_outcomes]

    @property
    def failures(self) -> list[OperationOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def success(self) -> bool:
        """Check if both batches succeeded."""
        return not self.errors

    def count(self, mode: ActionMode) -> int:
        """Number of dispatched or planned actions with this mode."""
        return sum(1 for o in self.outcomes if o.mode == mode)


def _errors_of(outcomes: Iterable[OperationOutcome]) -> list[Exception]:
    return [o.error for o in outcomes if o.status == OutcomeStatus.FAILED and o.error is not None]


class ReconcileError(Exception):
    """Raised when at least one batch of a run failed.

    The full per-data-source result is available as `result`; the
    exception is chained to the first failure.
    """

    def __init__(self, result: ReconcileResult) -> None:
        names = [o.name for o in result.failures]
        super().__init__(
            f"Reconciliation of API {result.api_id} failed with {len(result.errors)} error(s)"
            + (f": {', '.join(names)}" if names else "")
        )
        self.result = result

    @property
    def failures(self) -> list[OperationOutcome]:
        return self.result.failures


class DataSourceReconciler:
    """Converge the data sources of one AppSync API on a desired set.

    Args:
        client: Client bound to the target API.
        default_region: Region for data sources that do not set one.
        prune: Delete orphans from the prior deployment record.
        dry_run: Compute and report the plan without dispatching anything.
        excluded_keys: Top-level keys ignored when comparing with the live state.
    """

    def __init__(
        self,
        client: AppSyncDataSourceClient,
        default_region: str,
        *,
        prune: bool = True,
        dry_run: bool = False,
        excluded_keys: Iterable[str] = DEFAULT_EXCLUDED_KEYS,
    ) -> None:
        self._client = client
        self._default_region = default_region
        self._prune = prune
        self._dry_run = dry_run
        self._excluded_keys = frozenset(excluded_keys)

    async def reconcile(
        self,
        desired: Sequence[DataSourceSpec],
        prior: Iterable[DataSourceIdentity],
    ) -> ReconcileResult:
        """Run the prune and apply batches.

        Args:
            desired: Desired data sources, names unique.
            prior: Identities recorded by the previous successful run.

        Returns:
            ReconcileResult with one outcome per dispatched action.

        Raises:
            ReconcileError: If any operation, normalization or the remote
                listing failed.
        """
        result = ReconcileResult(api_id=self._client.api_id, dry_run=self._dry_run)

        result.unsupported = [spec.name for spec in desired if not is_supported_type(spec.type)]
        for name in result.unsupported:
            logger.warning(
                "Unsupported data source type, no type-specific config attached",
                extra={"api_id": result.api_id, "data_source": name},
            )

        pruned: set[str] = set()
        if self._prune:
            prune_actions = plan_prune(prior, {spec.identity for spec in desired})
            result.prune_outcomes = await self._run_batch("prune", prune_actions)
            result.errors.extend(_errors_of(result.prune_outcomes))
            pruned = {
                o.name for o in result.prune_outcomes if o.status != OutcomeStatus.FAILED
            }

        try:
            remote = await self._client.list_data_sources()
        except RemoteOperationError as e:
            logger.error(
                "Failed to list data sources, apply batch skipped",
                extra={"api_id": result.api_id, "error": str(e)},
            )
            result.errors.append(e)
        else:
            if self._dry_run:
                # Deletes were only planned; show the listing as apply would see it
                remote = [item for item in remote if item.get("name") not in pruned]

            plan = plan_apply(desired, remote, self._default_region, self._excluded_keys)
            result.ignored = [a.name for a in plan.actions if not a.dispatchable]
            dispatched = await self._run_batch(
                "apply", [a for a in plan.actions if a.dispatchable]
            )
            rejected = [self._failed(action, error) for action, error in plan.rejected]
            result.apply_outcomes = [*dispatched, *rejected]
            result.errors.extend(_errors_of(result.apply_outcomes))

        result.end_time = datetime.now(UTC)
        self._log_result(result)

        if not result.success:
            raise ReconcileError(result) from result.errors[0]
        return result

    async def _run_batch(self, batch: str, actions: list[Action]) -> list[OperationOutcome]:
        """Dispatch every action of a batch concurrently."""
        if not actions:
            return []

        logger.info(
            f"Running {batch} batch",
            extra={
                "api_id": self._client.api_id,
                "batch": batch,
                "action_count": len(actions),
                "dry_run": self._dry_run,
            },
        )

        if self._dry_run:
            return [OperationOutcome(action=a, status=OutcomeStatus.PLANNED) for a in actions]

        return list(await asyncio.gather(*(self._dispatch(a) for a in actions)))

    async def _dispatch(self, action: Action) -> OperationOutcome:
        """Send one action to AppSync and record how it ended."""
        operation = self._operation_for(action)
        try:
            await operation()
        except DataSourceNotFoundError as e:
            if action.mode != ActionMode.DELETE:
                return self._failed(action, e)
            logger.info(
                "Data source already absent",
                extra={"api_id": self._client.api_id, "data_source": action.name},
            )
            return OperationOutcome(action=action, status=OutcomeStatus.ALREADY_ABSENT)
        except RemoteOperationError as e:
            return self._failed(action, e)

        logger.info(
            f"Data source {action.mode.value}d",
            extra={
                "api_id": self._client.api_id,
                "data_source": action.name,
                "type": action.type,
                "type_changed": action.type_changed,
            },
        )
        return OperationOutcome(action=action, status=OutcomeStatus.SUCCEEDED)

    def _operation_for(self, action: Action) -> Callable[[], Awaitable[Any]]:
        match action.mode:
            case ActionMode.DELETE:
                return lambda: self._client.delete_data_source(action.name)
            case ActionMode.CREATE if action.data_source is not None:
                return lambda: self._client.create_data_source(action.data_source)
            case ActionMode.UPDATE if action.data_source is not None:
                return lambda: self._client.update_data_source(action.data_source)
            case _:
                raise ValueError(f"Action cannot be dispatched: {action}")

    def _failed(self, action: Action, error: Exception) -> OperationOutcome:
        logger.error(
            f"Failed to {action.mode.value} data source",
            extra={
                "api_id": self._client.api_id,
                "data_source": action.name,
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        return OperationOutcome(action=action, status=OutcomeStatus.FAILED, error=error)

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconciliation result with structured data."""
        extra: dict[str, Any] = {
            "api_id": result.api_id,
            "dry_run": result.dry_run,
            "duration_seconds": result.duration_seconds,
            "created": result.count(ActionMode.CREATE),
            "updated": result.count(ActionMode.UPDATE),
            "deleted": result.count(ActionMode.DELETE),
            "ignored": len(result.ignored),
            "unsupported": len(result.unsupported),
        }

        if result.errors:
            extra["error_count"] = len(result.errors)
            extra["failed"] = [o.name for o in result.failures]
            logger.error("Reconciliation failed", extra=extra)
        else:
            logger.info("Reconciliation result", extra=extra)
