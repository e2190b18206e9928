"""Integration tests for DataSourceReconciler against the AppSync mock."""

from typing import Any
from unittest.mock import patch

import pytest
from appsync_mock import InjectedFailure, MockAppSyncContext

from appsync_datasources.client import AppSyncDataSourceClient, RemoteOperationError
from appsync_datasources.models import (
    ActionMode,
    DataSourceIdentity,
    DataSourceSpec,
    NormalizedDataSource,
)
from appsync_datasources.normalizer import NormalizationError, normalize
from appsync_datasources.reconciler import (
    DataSourceReconciler,
    OutcomeStatus,
    ReconcileError,
    ReconcileResult,
)

API_ID = "abcdefghijklmnopqrstuvwxyz"
REGION = "eu-west-1"
WRITE_OPERATIONS = ("CreateDataSource", "UpdateDataSource", "DeleteDataSource")


def http(name: str, endpoint: str = "https://example.com") -> DataSourceSpec:
    return DataSourceSpec.model_validate(
        {"name": name, "type": "HTTP", "config": {"endpoint": endpoint}}
    )


def remote_http(name: str, endpoint: str = "https://example.com") -> dict[str, Any]:
    return {"name": name, "type": "HTTP", "httpConfig": {"endpoint": endpoint}}


def ident(name: str, type_: str = "HTTP") -> DataSourceIdentity:
    return DataSourceIdentity(name, type_)


def make_reconciler(ctx: MockAppSyncContext, **kwargs: Any) -> DataSourceReconciler:
    client = AppSyncDataSourceClient(API_ID, REGION, timeout_seconds=10, client=ctx.client)
    return DataSourceReconciler(client, REGION, **kwargs)


def write_calls(ctx: MockAppSyncContext) -> list[tuple[str, str]]:
    """Write calls in the order they reached the API."""
    return [
        (call.operation, call.params["name"])
        for call in ctx.state.calls
        if call.operation in WRITE_OPERATIONS
    ]


class TestReconcile:
    """Tests for a successful reconciliation run."""

    @pytest.mark.asyncio
    async def test_create_and_prune(self) -> None:
        """Test a new data source is created and a dropped one is deleted."""
        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("b")]
        ) as ctx:
            result = await make_reconciler(ctx).reconcile([http("a")], {ident("b")})

            assert [item["name"] for item in ctx.remote()] == ["a"]

        assert ctx.state.names_for("CreateDataSource") == ["a"]
        assert ctx.state.names_for("DeleteDataSource") == ["b"]
        assert result.success
        assert result.count(ActionMode.CREATE) == 1
        assert result.count(ActionMode.DELETE) == 1
        assert result.end_time is not None

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self) -> None:
        """Test re-applying the same desired set dispatches nothing."""
        desired = [
            http("status"),
            DataSourceSpec.model_validate(
                {"name": "orders", "type": "AMAZON_DYNAMODB", "config": {"tableName": "orders"}}
            ),
        ]

        with MockAppSyncContext(api_id=API_ID) as ctx:
            reconciler = make_reconciler(ctx)
            await reconciler.reconcile(desired, set())
            ctx.state.calls.clear()

            result = await reconciler.reconcile(desired, {d.identity for d in desired})

        assert write_calls(ctx) == []
        assert result.outcomes == []
        assert sorted(result.ignored) == ["orders", "status"]

    @pytest.mark.asyncio
    async def test_changed_config_updates(self) -> None:
        """Test a drifted data source is updated in place."""
        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("status", "https://old")]
        ) as ctx:
            result = await make_reconciler(ctx).reconcile([http("status")], {ident("status")})

            assert ctx.state.get(API_ID, "status")["httpConfig"]["endpoint"] == (
                "https://example.com"
            )

        assert write_calls(ctx) == [("UpdateDataSource", "status")]
        assert result.apply_outcomes[0].status == OutcomeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_type_change_deletes_before_create(self) -> None:
        """Test a type change removes the old data source before creating the new one."""
        desired = DataSourceSpec.model_validate(
            {"name": "orders", "type": "AMAZON_DYNAMODB", "config": {"tableName": "orders"}}
        )

        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("orders")]
        ) as ctx:
            await make_reconciler(ctx).reconcile([desired], {ident("orders")})

            assert ctx.state.get(API_ID, "orders")["type"] == "AMAZON_DYNAMODB"

        assert write_calls(ctx) == [
            ("DeleteDataSource", "orders"),
            ("CreateDataSource", "orders"),
        ]

    @pytest.mark.asyncio
    async def test_unrecorded_type_change_updates(self) -> None:
        """Test a same-named remote of another type with no prior record is updated."""
        desired = DataSourceSpec.model_validate(
            {"name": "orders", "type": "AMAZON_DYNAMODB", "config": {"tableName": "orders"}}
        )

        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("orders")]
        ) as ctx:
            result = await make_reconciler(ctx).reconcile([desired], set())

        assert write_calls(ctx) == [("UpdateDataSource", "orders")]
        assert result.apply_outcomes[0].action.type_changed is True

    @pytest.mark.asyncio
    async def test_prune_disabled(self) -> None:
        """Test orphans are left alone when pruning is off."""
        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("b")]
        ) as ctx:
            result = await make_reconciler(ctx, prune=False).reconcile([http("a")], {ident("b")})

        assert write_calls(ctx) == [("CreateDataSource", "a")]
        assert result.prune_outcomes == []

    @pytest.mark.asyncio
    async def test_unsupported_type_reported(self) -> None:
        """Test unknown types are created with identity fields only and reported."""
        desired = DataSourceSpec.model_validate(
            {"name": "bus", "type": "AMAZON_EVENTBRIDGE", "config": {"eventBusArn": "arn:bus"}}
        )

        with MockAppSyncContext(api_id=API_ID) as ctx:
            result = await make_reconciler(ctx).reconcile([desired], set())

        (call,) = ctx.state.calls_for("CreateDataSource")
        assert call.params == {"apiId": API_ID, "name": "bus", "type": "AMAZON_EVENTBRIDGE"}
        assert result.unsupported == ["bus"]


class TestDryRun:
    """Tests for dry-run planning."""

    @pytest.mark.asyncio
    async def test_nothing_dispatched(self) -> None:
        """Test a dry run lists the API but never writes to it."""
        with MockAppSyncContext(
            api_id=API_ID,
            initial_data_sources=[remote_http("b"), remote_http("c", "https://old")],
        ) as ctx:
            result = await make_reconciler(ctx, dry_run=True).reconcile(
                [http("a"), http("c")], {ident("b"), ident("c")}
            )

            assert len(ctx.remote()) == 2

        assert write_calls(ctx) == []
        assert result.dry_run is True
        assert all(o.status == OutcomeStatus.PLANNED for o in result.outcomes)
        assert result.count(ActionMode.CREATE) == 1
        assert result.count(ActionMode.UPDATE) == 1
        assert result.count(ActionMode.DELETE) == 1

    @pytest.mark.asyncio
    async def test_type_change_planned_as_create(self) -> None:
        """Test a planned prune hides the old data source from the apply plan."""
        desired = DataSourceSpec.model_validate(
            {"name": "orders", "type": "AWS_LAMBDA", "config": {"lambdaFunctionArn": "arn:fn"}}
        )

        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("orders")]
        ) as ctx:
            result = await make_reconciler(ctx, dry_run=True).reconcile(
                [desired], {ident("orders")}
            )

        assert [(o.name, o.mode) for o in result.outcomes] == [
            ("orders", ActionMode.DELETE),
            ("orders", ActionMode.CREATE),
        ]


class TestFailures:
    """Tests for partial failure handling."""

    @pytest.mark.asyncio
    async def test_missing_orphan_is_success(self) -> None:
        """Test deleting an already absent orphan succeeds without stopping siblings."""
        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("present")]
        ) as ctx:
            result = await make_reconciler(ctx).reconcile(
                [], {ident("gone"), ident("present")}
            )

            assert ctx.remote() == []

        statuses = {o.name: o.status for o in result.prune_outcomes}
        assert statuses == {
            "gone": OutcomeStatus.ALREADY_ABSENT,
            "present": OutcomeStatus.SUCCEEDED,
        }
        assert result.success

    @pytest.mark.asyncio
    async def test_create_failure_reported_per_resource(self) -> None:
        """Test one failed create fails the run while its siblings still complete."""
        failures = [InjectedFailure("CreateDataSource", name="bad")]

        with MockAppSyncContext(api_id=API_ID, failures=failures) as ctx:
            with pytest.raises(ReconcileError) as exc_info:
                await make_reconciler(ctx).reconcile([http("good"), http("bad")], set())

            assert [item["name"] for item in ctx.remote()] == ["good"]

        error = exc_info.value
        assert [o.name for o in error.failures] == ["bad"]
        assert "bad" in str(error)
        assert isinstance(error.__cause__, RemoteOperationError)
        assert error.__cause__.code == "InternalFailureException"
        statuses = {o.name: o.status for o in error.result.apply_outcomes}
        assert statuses == {"good": OutcomeStatus.SUCCEEDED, "bad": OutcomeStatus.FAILED}

    @pytest.mark.asyncio
    async def test_unexpected_config_shapes_submitted_as_authored(self) -> None:
        """Test config values of an unexpected type are left for AppSync to judge."""
        desired = [
            http("a"),
            DataSourceSpec.model_validate(
                {"name": "orders", "type": "AMAZON_DYNAMODB", "config": {"tableName": 2024}}
            ),
            DataSourceSpec.model_validate(
                {"name": "iam", "type": "HTTP", "config": {"authorizationConfig": "AWS_IAM"}}
            ),
        ]

        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("b")]
        ) as ctx:
            result = await make_reconciler(ctx).reconcile(desired, {ident("b")})

        assert result.success
        assert ctx.state.names_for("CreateDataSource") == ["a", "iam", "orders"]
        assert ctx.state.names_for("DeleteDataSource") == ["b"]
        created = {c.params["name"]: c.params for c in ctx.state.calls_for("CreateDataSource")}
        assert created["orders"]["dynamodbConfig"]["tableName"] == 2024
        assert created["iam"]["httpConfig"] == {"authorizationConfig": "AWS_IAM"}

    @pytest.mark.asyncio
    async def test_normalization_failure_reported_per_resource(self) -> None:
        """Test a data source that cannot be normalized fails alone."""

        def normalize_or_fail(spec: DataSourceSpec, region: str) -> NormalizedDataSource:
            if spec.name == "bad":
                raise NormalizationError("cannot build payload", data_source=spec.name)
            return normalize(spec, region)

        with (
            MockAppSyncContext(api_id=API_ID, initial_data_sources=[remote_http("b")]) as ctx,
            patch("appsync_datasources.comparator.normalize", side_effect=normalize_or_fail),
        ):
            with pytest.raises(ReconcileError) as exc_info:
                await make_reconciler(ctx).reconcile([http("a"), http("bad")], {ident("b")})

        result = exc_info.value.result
        assert ctx.state.names_for("CreateDataSource") == ["a"]
        assert ctx.state.names_for("DeleteDataSource") == ["b"]
        assert [o.name for o in result.failures] == ["bad"]
        assert isinstance(result.failures[0].error, NormalizationError)
        assert isinstance(exc_info.value.__cause__, NormalizationError)
        statuses = {o.name: o.status for o in result.apply_outcomes}
        assert statuses == {"a": OutcomeStatus.SUCCEEDED, "bad": OutcomeStatus.FAILED}

    @pytest.mark.asyncio
    async def test_prune_failure_does_not_block_apply(self) -> None:
        """Test the apply batch runs even when a prune delete fails."""
        failures = [InjectedFailure("DeleteDataSource", name="old")]

        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("old")], failures=failures
        ) as ctx:
            with pytest.raises(ReconcileError) as exc_info:
                await make_reconciler(ctx).reconcile([http("new")], {ident("old")})

        result = exc_info.value.result
        assert ctx.state.names_for("CreateDataSource") == ["new"]
        assert [o.name for o in result.failures] == ["old"]
        assert result.apply_outcomes[0].status == OutcomeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_update_of_missing_data_source_fails(self) -> None:
        """Test NotFound is only tolerated for deletes."""
        failures = [InjectedFailure("UpdateDataSource", name="status", code="NotFoundException")]

        with MockAppSyncContext(
            api_id=API_ID,
            initial_data_sources=[remote_http("status", "https://old")],
            failures=failures,
        ) as ctx:
            with pytest.raises(ReconcileError) as exc_info:
                await make_reconciler(ctx).reconcile([http("status")], set())

        assert exc_info.value.failures[0].status == OutcomeStatus.FAILED

    @pytest.mark.asyncio
    async def test_listing_failure_skips_apply(self) -> None:
        """Test a failed listing skips apply but keeps the prune outcomes."""
        failures = [InjectedFailure("ListDataSources")]

        with MockAppSyncContext(
            api_id=API_ID, initial_data_sources=[remote_http("old")], failures=failures
        ) as ctx:
            with pytest.raises(ReconcileError) as exc_info:
                await make_reconciler(ctx).reconcile([http("new")], {ident("old")})

        result = exc_info.value.result
        assert ctx.state.calls_for("CreateDataSource") == []
        assert [o.status for o in result.prune_outcomes] == [OutcomeStatus.SUCCEEDED]
        assert result.apply_outcomes == []
        assert result.errors[0].operation == "ListDataSources"
        assert result.failures == []


class TestReconcileResult:
    """Tests for ReconcileResult helpers."""

    def test_duration_before_end(self) -> None:
        """Test duration is zero until the run finishes."""
        assert ReconcileResult(api_id=API_ID).duration_seconds == 0.0

    def test_error_message_without_failures(self) -> None:
        """Test the message when only the listing failed."""
        result = ReconcileResult(api_id=API_ID)
        result.errors.append(RemoteOperationError("boom", operation="ListDataSources"))

        assert str(ReconcileError(result)) == (
            f"Reconciliation of API {API_ID} failed with 1 error(s)"
        )
