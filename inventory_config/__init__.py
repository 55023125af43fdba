"""
inventory_config -- single public entrypoint for service configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads configuration files or environment
    variables.  Returns a frozen ``InventoryConfig``.

Architecture position:
    Configuration -- sits beside ``inventory_kernel``.  The kernel never
    imports from ``inventory_config``; ``inventory_services.bootstrap``
    translates the config into constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- the requested configuration file is missing.
    - ``ValueError`` -- unknown keys or malformed values.

Audit relevance:
    Every successful call emits a ``config_loaded`` log entry with the
    checksum of the effective document, tying ledger activity to the
    configuration that governed it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from inventory_config.loader import compute_checksum, load_yaml_file, merge_documents, parse_config
from inventory_config.schema import (
    CostingConfig,
    DatabaseConfig,
    EventsConfig,
    InventoryConfig,
    LoggingConfig,
    QueryConfig,
    ReservationsConfig,
)

_logger = logging.getLogger("inventory_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

CONFIG_PATH_ENV = "INVENTORY_CONFIG"
DATABASE_URL_ENV = "INVENTORY_DATABASE_URL"


def get_active_config(path: Path | str | None = None) -> InventoryConfig:
    """The ONLY public configuration entrypoint.

    Resolution order (later wins):
        1. ``defaults.yaml`` shipped with the package.
        2. ``path`` if given, else the file named by ``INVENTORY_CONFIG``.
        3. ``INVENTORY_DATABASE_URL`` for ``database.url``.

    Raises:
        FileNotFoundError: If an explicitly requested file does not exist.
        ValueError: If the merged document fails validation.
    """
    document = load_yaml_file(DEFAULTS_PATH)
    source = "defaults"

    override_path = path if path is not None else os.environ.get(CONFIG_PATH_ENV)
    if override_path:
        document = merge_documents(document, load_yaml_file(Path(override_path)))
        source = str(override_path)

    database_url = os.environ.get(DATABASE_URL_ENV)
    if database_url:
        document = merge_documents(document, {"database": {"url": database_url}})

    config = parse_config(document)

    _logger.info(
        "config_loaded",
        extra={
            "source": source,
            "checksum": config.checksum,
            "database_dialect": config.database.url.split(":", 1)[0],
            "url_from_env": bool(database_url),
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "DATABASE_URL_ENV",
    "CostingConfig",
    "DatabaseConfig",
    "EventsConfig",
    "InventoryConfig",
    "LoggingConfig",
    "QueryConfig",
    "ReservationsConfig",
    "compute_checksum",
    "get_active_config",
]
