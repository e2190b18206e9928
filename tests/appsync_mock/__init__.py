"""AppSync API Mock for Integration Testing.

In-memory implementation of the AppSync data source operations, so the
reconciler can be tested end to end without AWS connectivity.

Key Features:
- In-memory data source state per API
- nextToken pagination for ListDataSources
- Service error codes (NotFoundException, BadRequestException)
- Error injection per operation and data source name
- Call recording for assertions

Usage:
    from appsync_mock import MockAppSyncContext

    with MockAppSyncContext(api_id=API_ID) as ctx:
        await reconcile_from_config(config)
        assert ctx.state.names_for("CreateDataSource") == ["orders"]
"""

from .client import MockAppSyncClient
from .context import MockAppSyncContext
from .state import InjectedFailure, MockAppSyncState, RecordedCall

__all__ = [
    "InjectedFailure",
    "MockAppSyncClient",
    "MockAppSyncContext",
    "MockAppSyncState",
    "RecordedCall",
]
