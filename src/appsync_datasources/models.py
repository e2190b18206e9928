"""Pydantic models for data source specifications with validation.

These models provide:
1. Type-safe YAML parsing of the desired data source set
2. Validation at the boundary (fail fast, fail loudly)
3. The type-specific AppSync payload shapes produced by normalization
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator, model_validator

# =============================================================================
# Enumerations and identities
# =============================================================================


class DataSourceType(str, Enum):
    """AppSync data source types handled by the normalizer."""

    AWS_LAMBDA = "AWS_LAMBDA"
    AMAZON_DYNAMODB = "AMAZON_DYNAMODB"
    AMAZON_ELASTICSEARCH = "AMAZON_ELASTICSEARCH"
    HTTP = "HTTP"
    RELATIONAL_DATABASE = "RELATIONAL_DATABASE"

    @classmethod
    def parse(cls, value: str) -> DataSourceType | None:
        """Return the matching member, or None for types outside the enumeration."""
        try:
            return cls(value)
        except ValueError:
            return None


RDS_HTTP_ENDPOINT = "RDS_HTTP_ENDPOINT"


class ActionMode(str, Enum):
    """What the executor must do for a single data source."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    IGNORE = "ignore"


@dataclass(frozen=True, order=True)
class DataSourceIdentity:
    """The {name, type} pair recorded in the prior deployment record."""

    name: str
    type: str

    def to_dict(self) -> dict[str, str]:
        """Convert to the persisted mapping form."""
        return {"name": self.name, "type": self.type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataSourceIdentity:
        """Build an identity from a persisted mapping.

        Raises:
            ValueError: If name or type is missing or empty.
        """
        name = data.get("name")
        type_ = data.get("type")
        if not isinstance(name, str) or not name:
            raise ValueError(f"Identity requires a non-empty name: {data}")
        if not isinstance(type_, str) or not type_:
            raise ValueError(f"Identity requires a non-empty type: {data}")
        return cls(name=name, type=type_)


# =============================================================================
# Desired state (user-authored)
# =============================================================================


class DataSourceSpec(BaseModel):
    """A single user-authored data source.

    `config` is an opaque bag whose shape depends on `type`; it is reshaped
    by the normalizer and never validated here.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: Annotated[str, Field(min_length=1)]
    type: Annotated[str, Field(min_length=1)]
    description: str | None = None
    service_role_arn: str | None = Field(None, alias="serviceRoleArn")
    region: str | None = None
    config: dict[str, Any] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def default_config(cls, v: Any) -> Any:
        # `config:` with no value in YAML parses as None
        return {} if v is None else v

    @property
    def identity(self) -> DataSourceIdentity:
        """Identity pair used for orphan detection."""
        return DataSourceIdentity(name=self.name, type=self.type)


class DataSourcesSpec(BaseModel):
    """The desired data source set for one AppSync API."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    region: str | None = None
    data_sources: list[DataSourceSpec] = Field(default_factory=list, alias="dataSources")

    @field_validator("data_sources")
    @classmethod
    def validate_unique_names(cls, v: list[DataSourceSpec]) -> list[DataSourceSpec]:
        seen: set[str] = set()
        duplicates: list[str] = []
        for data_source in v:
            if data_source.name in seen:
                duplicates.append(data_source.name)
            seen.add(data_source.name)
        if duplicates:
            raise ValueError(
                f"data source names must be unique, duplicated: {sorted(set(duplicates))}"
            )
        return v

    @property
    def identities(self) -> set[DataSourceIdentity]:
        """Identity set of every desired data source."""
        return {data_source.identity for data_source in self.data_sources}


# =============================================================================
# Type-specific AppSync configuration (one case per data source type)
# =============================================================================
# Fields are typed Any and unknown keys are carried through verbatim:
# configuration is not validated ahead of submission, AppSync reports those
# errors. Only the values injected by the normalizer have a fixed type.


class LambdaConfig(BaseModel):
    """AWS_LAMBDA configuration."""

    model_config = {"extra": "allow"}

    lambda_function_arn: Any = Field(None, alias="lambdaFunctionArn")


class DynamodbConfig(BaseModel):
    """AMAZON_DYNAMODB configuration."""

    model_config = {"extra": "allow"}

    table_name: Any = Field(None, alias="tableName")
    aws_region: Any = Field(None, alias="awsRegion")
    use_caller_credentials: bool = Field(False, alias="useCallerCredentials")


class ElasticsearchConfig(BaseModel):
    """AMAZON_ELASTICSEARCH configuration."""

    model_config = {"extra": "allow"}

    endpoint: Any = None
    aws_region: Any = Field(None, alias="awsRegion")


class HttpConfig(BaseModel):
    """HTTP configuration."""

    model_config = {"extra": "allow"}

    endpoint: Any = None
    authorization_config: Any = Field(None, alias="authorizationConfig")


class RdsHttpEndpointConfig(BaseModel):
    """Aurora Data API access settings nested in a relational database config."""

    model_config = {"extra": "allow"}

    aws_region: Any = Field(None, alias="awsRegion")
    db_cluster_identifier: Any = Field(None, alias="dbClusterIdentifier")
    database_name: Any = Field(None, alias="databaseName")
    db_schema: Any = Field(None, alias="schema")
    aws_secret_store_arn: Any = Field(None, alias="awsSecretStoreArn")


class RelationalDatabaseConfig(BaseModel):
    """RELATIONAL_DATABASE configuration, discriminated by source type."""

    model_config = {"extra": "allow"}

    relational_database_source_type: str = Field(
        RDS_HTTP_ENDPOINT, alias="relationalDatabaseSourceType"
    )
    rds_http_endpoint_config: RdsHttpEndpointConfig = Field(alias="rdsHttpEndpointConfig")


# Payload field carrying the configuration for each type
CONFIG_FIELD_BY_TYPE: dict[DataSourceType, str] = {
    DataSourceType.AWS_LAMBDA: "lambda_config",
    DataSourceType.AMAZON_DYNAMODB: "dynamodb_config",
    DataSourceType.AMAZON_ELASTICSEARCH: "elasticsearch_config",
    DataSourceType.HTTP: "http_config",
    DataSourceType.RELATIONAL_DATABASE: "relational_database_config",
}


class NormalizedDataSource(BaseModel):
    """A data source in the shape the AppSync API expects.

    Carries the identity fields plus at most one type-specific config
    field; data sources of a known type carry exactly the field named
    after their type.
    """

    model_config = {"populate_by_name": True, "frozen": True}

    name: str
    type: str
    description: str | None = None
    service_role_arn: str | None = Field(None, alias="serviceRoleArn")
    lambda_config: LambdaConfig | None = Field(None, alias="lambdaConfig")
    dynamodb_config: DynamodbConfig | None = Field(None, alias="dynamodbConfig")
    elasticsearch_config: ElasticsearchConfig | None = Field(None, alias="elasticsearchConfig")
    http_config: HttpConfig | None = Field(None, alias="httpConfig")
    relational_database_config: RelationalDatabaseConfig | None = Field(
        None, alias="relationalDatabaseConfig"
    )

    @model_validator(mode="after")
    def validate_single_config(self) -> NormalizedDataSource:
        populated = self.populated_config_fields()
        if len(populated) > 1:
            raise ValueError(f"only one type-specific config may be set, got {populated}")

        known_type = DataSourceType.parse(self.type)
        if known_type is not None:
            expected = CONFIG_FIELD_BY_TYPE[known_type]
            if populated != [expected]:
                raise ValueError(f"{self.type} data source requires {expected}, got {populated}")
        return self

    def populated_config_fields(self) -> list[str]:
        """Names of the type-specific config fields that are set."""
        return [name for name in CONFIG_FIELD_BY_TYPE.values() if getattr(self, name) is not None]

    @property
    def identity(self) -> DataSourceIdentity:
        return DataSourceIdentity(name=self.name, type=self.type)

    def to_api_payload(self) -> dict[str, Any]:
        """Convert to AppSync camelCase parameters, without unset values."""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# Actions
# =============================================================================


@dataclass(frozen=True)
class Action:
    """A classified operation for one data source.

    Attributes:
        name: Data source name (identity key within the API).
        type: Data source type.
        mode: What the executor must do.
        data_source: Normalized payload; None for delete actions.
        type_changed: True if the same-named remote data source has another type.
    """

    name: str
    type: str
    mode: ActionMode
    data_source: NormalizedDataSource | None = None
    type_changed: bool = False

    @property
    def identity(self) -> DataSourceIdentity:
        return DataSourceIdentity(name=self.name, type=self.type)

    @property
    def dispatchable(self) -> bool:
        """Ignore actions are never sent to the API."""
        return self.mode != ActionMode.IGNORE
