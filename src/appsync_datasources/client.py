"""AppSync data source API client.

Wraps the synchronous boto3 `appsync` client with async methods that run
each call in the default executor under a timeout. Failures are mapped to
two exceptions: DataSourceNotFoundError for AppSync's NotFoundException
and RemoteOperationError for everything else.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import MAX_DATA_SOURCES_PER_API, MAX_LIST_PAGES
from .models import NormalizedDataSource

logger = logging.getLogger(__name__)

NOT_FOUND_ERROR_CODE = "NotFoundException"
LIST_PAGE_SIZE = 25


class RemoteOperationError(Exception):
    """Raised when an AppSync API call fails.

    Attributes:
        operation: AppSync operation name (e.g. "CreateDataSource").
        data_source: Data source name, if the call targeted one.
        code: AppSync error code, if the service returned one.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        data_source: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.data_source = data_source
        self.code = code


class DataSourceNotFoundError(RemoteOperationError):
    """Raised when the targeted data source does not exist."""

    pass


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class AppSyncDataSourceClient:
    """Async access to the data sources of a single AppSync API.

    Args:
        api_id: Target AppSync GraphQL API identifier.
        region: Region of the API.
        timeout_seconds: Maximum time to wait for each API call.
        client: Pre-built boto3 appsync client; created from `region` if omitted.
    """

    def __init__(
        self,
        api_id: str,
        region: str,
        timeout_seconds: float,
        client: Any | None = None,
    ) -> None:
        self._api_id = api_id
        self._timeout_seconds = timeout_seconds
        if client is None:
            client = boto3.client("appsync", region_name=region)
        self._client = client

    @property
    def api_id(self) -> str:
        return self._api_id

    async def list_data_sources(self) -> list[dict[str, Any]]:
        """List every data source of the API, following pagination to the end.

        Raises:
            RemoteOperationError: If a page cannot be fetched or the listing
                does not terminate within MAX_LIST_PAGES.
        """
        data_sources: list[dict[str, Any]] = []
        next_token: str | None = None

        for _ in range(MAX_LIST_PAGES):
            params: dict[str, Any] = {"apiId": self._api_id, "maxResults": LIST_PAGE_SIZE}
            if next_token:
                params["nextToken"] = next_token

            page = await self._call(
                "ListDataSources",
                lambda params=params: self._client.list_data_sources(**params),
            )
            data_sources.extend(page.get("dataSources", []))

            if len(data_sources) > MAX_DATA_SOURCES_PER_API:
                raise RemoteOperationError(
                    f"ListDataSources returned more than {MAX_DATA_SOURCES_PER_API} data sources",
                    operation="ListDataSources",
                )

            next_token = page.get("nextToken")
            if not next_token:
                logger.debug(
                    "Listed data sources",
                    extra={"api_id": self._api_id, "count": len(data_sources)},
                )
                return data_sources

        raise RemoteOperationError(
            f"ListDataSources did not finish within {MAX_LIST_PAGES} pages",
            operation="ListDataSources",
        )

    async def create_data_source(self, data_source: NormalizedDataSource) -> dict[str, Any]:
        """Create a data source; returns the created data source."""
        params = self._write_params(data_source)
        response = await self._call(
            "CreateDataSource",
            lambda: self._client.create_data_source(**params),
            data_source=data_source.name,
        )
        return response.get("dataSource", {})

    async def update_data_source(self, data_source: NormalizedDataSource) -> dict[str, Any]:
        """Replace a data source's settings; returns the updated data source."""
        params = self._write_params(data_source)
        response = await self._call(
            "UpdateDataSource",
            lambda: self._client.update_data_source(**params),
            data_source=data_source.name,
        )
        return response.get("dataSource", {})

    async def delete_data_source(self, name: str) -> None:
        """Delete a data source by name.

        Raises:
            DataSourceNotFoundError: If no data source has this name.
            RemoteOperationError: For any other failure.
        """
        await self._call(
            "DeleteDataSource",
            lambda: self._client.delete_data_source(apiId=self._api_id, name=name),
            data_source=name,
        )

    def _write_params(self, data_source: NormalizedDataSource) -> dict[str, Any]:
        params = data_source.to_api_payload()
        params["apiId"] = self._api_id
        return params

    async def _call(
        self,
        operation: str,
        func: Callable[[], Any],
        data_source: str | None = None,
    ) -> Any:
        """Run a blocking SDK call in the executor with timeout and error mapping."""
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, func),
                timeout=self._timeout_seconds,
            )
        except TimeoutError as e:
            logger.error(
                f"{operation} timed out",
                extra={
                    "api_id": self._api_id,
                    "data_source": data_source,
                    "timeout_seconds": self._timeout_seconds,
                },
            )
            raise RemoteOperationError(
                f"{operation} timed out after {self._timeout_seconds}s",
                operation=operation,
                data_source=data_source,
            ) from e
        except ClientError as e:
            code = _error_code(e)
            error_cls = (
                DataSourceNotFoundError if code == NOT_FOUND_ERROR_CODE else RemoteOperationError
            )
            raise error_cls(
                f"{operation} failed: {e}",
                operation=operation,
                data_source=data_source,
                code=code,
            ) from e
        except BotoCoreError as e:
            raise RemoteOperationError(
                f"{operation} failed: {e}",
                operation=operation,
                data_source=data_source,
            ) from e
