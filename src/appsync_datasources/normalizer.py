"""Reshape user-authored data sources into AppSync payloads.

The generic `config` bag of a DataSourceSpec is routed into the single
type-specific field AppSync expects, with region and boolean defaults
injected. A region nested in the config bag is promoted out of it: AppSync
calls it `awsRegion` and only some types accept it.

Normalization is pure and leaves config values as authored: AppSync, not
the normalizer, rejects values of the wrong type. Types outside
DataSourceType pass through with only their identity fields; callers
decide how to report them.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from pydantic import ValidationError

from .models import (
    DataSourceSpec,
    DataSourceType,
    DynamodbConfig,
    ElasticsearchConfig,
    HttpConfig,
    LambdaConfig,
    NormalizedDataSource,
    RdsHttpEndpointConfig,
    RelationalDatabaseConfig,
)

logger = logging.getLogger(__name__)

REGION_KEY = "region"
AWS_REGION_KEY = "awsRegion"


class NormalizationError(ValueError):
    """Raised when a data source cannot be reshaped into an AppSync payload."""

    def __init__(self, message: str, *, data_source: str) -> None:
        super().__init__(message)
        self.data_source = data_source


def resolve_region(spec: DataSourceSpec, default_region: str) -> str:
    """Pick the region for a data source.

    Precedence: `config.region`, then the data source's own `region`,
    then the deployment-wide default.
    """
    return spec.config.get(REGION_KEY) or spec.region or default_region


def is_supported_type(type_: str) -> bool:
    """Check whether the normalizer attaches a type-specific config for this type."""
    return DataSourceType.parse(type_) is not None


def normalize(spec: DataSourceSpec, default_region: str) -> NormalizedDataSource:
    """Convert a data source spec into its AppSync shape.

    Args:
        spec: User-authored data source.
        default_region: Region used when neither the config nor the spec sets one.

    Returns:
        Normalized data source with exactly one type-specific config for
        known types, or only identity fields for unknown types.

    Raises:
        NormalizationError: If the payload cannot be built for this data source.
    """
    try:
        return NormalizedDataSource(**_payload_fields(spec, default_region))
    except ValidationError as e:
        raise NormalizationError(
            f"Data source {spec.name} could not be normalized: {e}",
            data_source=spec.name,
        ) from e


def _payload_fields(spec: DataSourceSpec, default_region: str) -> dict[str, Any]:
    region = resolve_region(spec, default_region)
    config: dict[str, Any] = copy.deepcopy(spec.config)
    config.pop(REGION_KEY, None)

    fields: dict[str, Any] = {
        "name": spec.name,
        "type": spec.type,
        "description": spec.description or None,
        "service_role_arn": spec.service_role_arn,
    }

    match DataSourceType.parse(spec.type):
        case DataSourceType.AWS_LAMBDA:
            fields["lambda_config"] = LambdaConfig.model_validate(config)

        case DataSourceType.AMAZON_DYNAMODB:
            config[AWS_REGION_KEY] = region
            config["useCallerCredentials"] = bool(config.get("useCallerCredentials"))
            fields["dynamodb_config"] = DynamodbConfig.model_validate(config)

        case DataSourceType.AMAZON_ELASTICSEARCH:
            # Region belongs on the elasticsearch config itself, never on
            # another type's field.
            config[AWS_REGION_KEY] = region
            fields["elasticsearch_config"] = ElasticsearchConfig.model_validate(config)

        case DataSourceType.HTTP:
            fields["http_config"] = HttpConfig.model_validate(config)

        case DataSourceType.RELATIONAL_DATABASE:
            config[AWS_REGION_KEY] = region
            fields["relational_database_config"] = RelationalDatabaseConfig.model_validate(
                {"rdsHttpEndpointConfig": RdsHttpEndpointConfig.model_validate(config)}
            )

        case _:
            logger.debug(
                "Unsupported data source type, passing through identity only",
                extra={"data_source": spec.name, "type": spec.type},
            )

    return fields
