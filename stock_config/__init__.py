"""
stock_config -- single public entrypoint for store configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``StoreConfig``.  YAML
    loading is internal tooling and never exposed to callers.

Architecture position:
    Configuration -- sits above ``stock_kernel`` and beside
    ``stock_services``.  The kernel and the engines MUST NEVER import from
    ``stock_config``; scripts and bootstrap hand the values down.

Invariants enforced:
    - Single entrypoint: runtime config flows through ``get_active_config()``.
    - Deterministic checksum: the same YAML always yields the same checksum.
    - The settings row in the database stays the runtime authority for the
      inventory method and expiry flag; the YAML only seeds it.

Failure modes:
    - ``FileNotFoundError`` -- the config file does not exist.
    - ``KeyError`` / ``ValueError`` -- missing sections or bad values.

Audit relevance:
    Every successful call emits a ``STOCK_CONFIG_TRACE`` log entry with the
    config name, version and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from stock_config.loader import load_yaml_file, parse_store_config
from stock_config.schema import StoreConfig

_logger = logging.getLogger("stock_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "store.yaml"

CONFIG_PATH_ENV = "STOCK_LEDGER_CONFIG"
DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> StoreConfig:
    """Load the store configuration for this process.

    The file is ``config_path`` if given, else STOCK_LEDGER_CONFIG, else
    the packaged defaults/store.yaml.
    DATABASE_URL, when set, replaces ``database.url``.

    Raises:
        FileNotFoundError: the resolved file does not exist.
        KeyError: a required section is missing.
        ValueError: a value is invalid.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    data = load_yaml_file(path)
    config = parse_store_config(data, database_url_override=os.environ.get(DATABASE_URL_ENV))

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "inventory_method": config.inventory_method.value,
        },
    )
    return config


__all__ = ["StoreConfig", "get_active_config"]
