"""
YAML loading for store configuration.

Internal tooling for ``stock_config.get_active_config``; runtime callers
never import this module.

Failure modes:
    * Missing file     -> ``FileNotFoundError`` propagates.
    * Malformed YAML   -> ``yaml.YAMLError`` propagates.
    * Missing section  -> ``KeyError``.
    * Bad value        -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import LOG_LEVELS, StoreConfig
from stock_kernel.domain.policy import InventoryMethod


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Parsed mapping of a store YAML file; an empty file reads as {}."""
    with open(path) as fh:
        return yaml.safe_load(fh) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """Hex SHA-256 over key-sorted JSON, so key order in the file does not matter."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"{key} must be true or false, got {value!r}")


def parse_store_config(
    data: dict[str, Any],
    database_url_override: str | None = None,
) -> StoreConfig:
    """
    Build a StoreConfig from parsed YAML.

    ``database_url_override`` (normally the DATABASE_URL environment
    variable) replaces ``database.url``.  The checksum always covers the
    file contents, not the override.
    """
    store = data.get("store", {})
    database = data["database"]
    inventory = data["inventory"]
    logging_section = data.get("logging", {})

    database_url = database_url_override or database["url"]
    if not database_url:
        raise ValueError("database.url must not be empty")

    try:
        method = InventoryMethod(str(inventory["method"]).upper())
    except ValueError as exc:
        raise ValueError(
            f"inventory.method must be one of {[m.value for m in InventoryMethod]}, "
            f"got {inventory['method']!r}"
        ) from exc

    log_level = str(logging_section.get("level", "INFO")).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {LOG_LEVELS}, got {log_level!r}")

    return StoreConfig(
        name=str(store.get("name", "default")),
        version=int(store.get("version", 1)),
        database_url=database_url,
        echo_sql=_as_bool(database.get("echo_sql", False), "database.echo_sql"),
        log_level=log_level,
        inventory_method=method,
        is_expiry_date_considered=_as_bool(
            inventory.get("is_expiry_date_considered", False),
            "inventory.is_expiry_date_considered",
        ),
        checksum=compute_checksum(data),
    )
