"""
fulfillment_config -- single public entrypoint for fulfillment configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  It loads a YAML configuration set, validates it into frozen
    policy objects and returns a ``FulfillmentConfig``.

Architecture position:
    Sits above ``fulfillment_kernel``.  The kernel never imports this
    package; services receive the policy objects through their
    constructors (see ``fulfillment_config.bridges``).

Audit relevance:
    Every successful call emits a ``FULFILLMENT_CONFIG_TRACE`` log record
    with the config id, version and checksum, tying each allocation back to
    the exact configuration that governed it.
"""

from __future__ import annotations

import os
from pathlib import Path

from fulfillment_config.loader import load_config
from fulfillment_config.schema import AllocationPolicy, FulfillmentConfig, FulfillmentPolicy
from fulfillment_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

CONFIG_PATH_ENV = "FULFILLMENT_CONFIG"


def get_active_config(config_path: Path | str | None = None) -> FulfillmentConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: ``config_path`` argument, then the
    ``FULFILLMENT_CONFIG`` environment variable, then the packaged
    ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If the configuration fails validation.
    """
    path = Path(config_path or os.environ.get(CONFIG_PATH_ENV) or _DEFAULT_CONFIG_PATH)
    config = load_config(path)

    _logger.info(
        "FULFILLMENT_CONFIG_TRACE",
        extra={
            "trace_type": "FULFILLMENT_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "default_strategy": config.allocation.default_strategy,
            "allow_lot_splitting": config.allocation.allow_lot_splitting,
            "allocatable_order_statuses": list(config.allocation.allocatable_order_statuses),
        },
    )
    return config


__all__ = [
    "AllocationPolicy",
    "FulfillmentConfig",
    "FulfillmentPolicy",
    "get_active_config",
]
