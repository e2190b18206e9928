"""Main entry point for the AppSync data source reconciler.

Runs one reconciliation of the configured API from environment
configuration, the way a CI job or deployment hook invokes it:
load the desired set and the prior deployment record, converge, then
record the desired identities once everything succeeded.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from datetime import UTC, datetime

from .client import AppSyncDataSourceClient
from .config import Config, ConfigurationError
from .reconciler import DataSourceReconciler, ReconcileError, ReconcileResult
from .spec_loader import SpecLoadError, load_spec
from .state import DeploymentStateStore, StateStoreError

# LogRecord attributes that are not structured `extra` fields
_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "stack_info",
        "exc_info",
        "exc_text",
        "thread",
        "threadName",
        "taskName",
        "message",
    }
)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_RECONCILE_ERROR = 2


class JsonFormatter(logging.Formatter):
    """Format logs as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_KEYS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging: JSON by default, plain text when LOG_FORMAT=text."""
    handler = logging.StreamHandler(sys.stderr)
    if os.environ.get("LOG_FORMAT", "").lower() == "text":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(JsonFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(level)

    # Reduce noise from the AWS SDK
    for noisy in ("boto3", "botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


async def reconcile_from_config(
    config: Config,
    client: AppSyncDataSourceClient | None = None,
) -> ReconcileResult:
    """Reconcile the configured API and persist the new deployment record.

    The record is only rewritten after a fully successful, non-dry run.

    Raises:
        SpecLoadError: If the spec file is missing or invalid.
        StateStoreError: If the deployment record cannot be read or written.
        ReconcileError: If any AppSync operation failed.
    """
    spec = load_spec(config.specs_file)
    store = DeploymentStateStore(config.state_file, config.api_id)
    prior = store.load()

    if client is None:
        client = AppSyncDataSourceClient(
            api_id=config.api_id,
            region=config.region,
            timeout_seconds=config.operation_timeout_seconds,
        )

    reconciler = DataSourceReconciler(
        client,
        default_region=spec.region or config.region,
        prune=config.prune,
        dry_run=config.dry_run,
    )
    result = await reconciler.reconcile(spec.data_sources, prior)

    if not config.dry_run:
        # Without pruning, orphans were not deleted and stay on record
        store.save(spec.identities if config.prune else spec.identities | prior)

    return result


async def main() -> int:
    """Run one reconciliation from environment configuration.

    Returns:
        Exit code (0 for success, 1 for configuration errors, 2 for failed runs).
    """
    setup_logging()
    logger = logging.getLogger(__name__)

    try:
        config = Config.from_env()
    except ConfigurationError as e:
        logger.error("Configuration error", extra={"error": str(e)})
        return EXIT_CONFIG_ERROR

    logger.info(
        "Starting AppSync data source reconciler",
        extra={
            "api_id": config.api_id,
            "region": config.region,
            "specs_file": str(config.specs_file),
            "dry_run": config.dry_run,
        },
    )

    try:
        await reconcile_from_config(config)
    except (SpecLoadError, StateStoreError) as e:
        logger.error("Failed to load inputs", extra={"error": str(e)})
        return EXIT_CONFIG_ERROR
    except ReconcileError as e:
        logger.error(
            "Reconciliation failed",
            extra={"error": str(e), "failed": [o.name for o in e.failures]},
        )
        return EXIT_RECONCILE_ERROR

    return EXIT_OK


def run() -> None:
    """Entry point for environment-driven runs."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
