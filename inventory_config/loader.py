"""
Configuration Loader (``inventory_config.loader``).

Responsibility
--------------
Loads YAML documents and parses them into the frozen dataclasses of
``inventory_config.schema``.  The single public entry point for runtime
configuration is ``inventory_config.get_active_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown sections or keys are rejected, never ignored.
* Values are type-checked against the schema defaults; a bool is never
  accepted where a number is expected.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or wrong value type  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import fields
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from inventory_config.schema import (
    CostingConfig,
    DatabaseConfig,
    EventsConfig,
    InventoryConfig,
    LoggingConfig,
    QueryConfig,
    ReservationsConfig,
)

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "costing": CostingConfig,
    "events": EventsConfig,
    "reservations": ReservationsConfig,
    "query": QueryConfig,
    "logging": LoggingConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root must be a mapping: {path}")
    return data


def merge_documents(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` over ``base`` one section deep."""
    merged = {name: dict(values or {}) for name, values in base.items()}
    for name, values in override.items():
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Configuration section '{name}' must be a mapping")
        merged.setdefault(name, {}).update(values)
    return merged


def _coerce(section: str, key: str, value: Any, default: Any) -> Any:
    expected = type(default)
    if expected is bool:
        if not isinstance(value, bool):
            raise ValueError(f"{section}.{key} must be a boolean, got {value!r}")
        return value
    if expected in (int, float):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{section}.{key} must be a number, got {value!r}")
        if expected is int and not isinstance(value, int):
            raise ValueError(f"{section}.{key} must be an integer, got {value!r}")
        return expected(value)
    if not isinstance(value, str):
        raise ValueError(f"{section}.{key} must be a string, got {value!r}")
    return value


def parse_section(name: str, data: dict[str, Any]) -> Any:
    """Parse one section dict into its schema dataclass."""
    cls = _SECTIONS[name]
    defaults = cls()
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {', '.join(unknown)}")
    values = {
        key: _coerce(name, key, value, getattr(defaults, key))
        for key, value in data.items()
    }
    return cls(**values)


def _validate(config: InventoryConfig) -> None:
    if config.costing.average_cost_places < 0:
        raise ValueError("costing.average_cost_places must be >= 0")
    if config.query.max_results <= 0:
        raise ValueError("query.max_results must be > 0")
    if config.events.webhook_timeout_seconds <= 0:
        raise ValueError("events.webhook_timeout_seconds must be > 0")
    if config.reservations.sweep_interval_seconds <= 0:
        raise ValueError("reservations.sweep_interval_seconds must be > 0")
    if not isinstance(logging.getLevelName(config.logging.level.upper()), int):
        raise ValueError(f"logging.level is not a logging level: {config.logging.level!r}")
    try:
        UUID(config.reservations.sweeper_actor_id)
    except ValueError:
        raise ValueError(
            f"reservations.sweeper_actor_id must be a UUID, got {config.reservations.sweeper_actor_id!r}"
        ) from None


def parse_config(data: dict[str, Any]) -> InventoryConfig:
    """
    Parse a full (already merged) document into an InventoryConfig.

    Postconditions:
        - ``checksum`` is the SHA-256 of the canonical document.
    """
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ValueError(f"Unknown configuration sections: {', '.join(unknown)}")

    sections = {name: parse_section(name, data.get(name) or {}) for name in _SECTIONS}
    config = InventoryConfig(**sections, checksum=compute_checksum(data))
    _validate(config)
    return config


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
