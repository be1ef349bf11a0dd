"""
Configuration Loader (``fulfillment_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the frozen dataclasses of
``fulfillment_config.schema``.  Runtime callers use
``fulfillment_config.get_active_config()`` rather than this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Unknown keys or invalid values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from fulfillment_config.schema import AllocationPolicy, FulfillmentConfig, FulfillmentPolicy


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _check_keys(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in {section}: {sorted(unknown)}")


def _as_tuple(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def parse_allocation_policy(data: dict[str, Any]) -> AllocationPolicy:
    """Parse the ``allocation`` section; omitted keys take policy defaults."""
    allowed = {f.name for f in fields(AllocationPolicy)}
    _check_keys("allocation", data, allowed)
    kwargs: dict[str, Any] = {}
    for key in (
        "allocatable_order_statuses",
        "allocatable_item_statuses",
        "eligible_lot_statuses",
    ):
        if key in data:
            kwargs[key] = _as_tuple(data[key])
    if "default_strategy" in data:
        kwargs["default_strategy"] = str(data["default_strategy"]).upper()
    for key in ("allow_lot_splitting", "exclude_expired_lots"):
        if key in data:
            kwargs[key] = bool(data[key])
    return AllocationPolicy(**kwargs)


def parse_fulfillment_policy(data: dict[str, Any]) -> FulfillmentPolicy:
    """Parse the ``fulfillment`` section; omitted keys take policy defaults."""
    allowed = {f.name for f in fields(FulfillmentPolicy)}
    _check_keys("fulfillment", data, allowed)
    return FulfillmentPolicy(**{key: bool(value) for key, value in data.items()})


def parse_config(data: dict[str, Any]) -> FulfillmentConfig:
    """Parse a full configuration set dict."""
    _check_keys("root", data, {"config_id", "version", "description", "allocation", "fulfillment"})
    return FulfillmentConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        description=data.get("description", ""),
        allocation=parse_allocation_policy(data.get("allocation") or {}),
        fulfillment=parse_fulfillment_policy(data.get("fulfillment") or {}),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> FulfillmentConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; deterministic for equal data."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
