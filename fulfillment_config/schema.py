"""
FulfillmentConfig schema.

The human-authored YAML configuration set is parsed into these frozen
dataclasses by the loader.  The policy objects themselves live in the
kernel (``fulfillment_kernel.domain.policy``) so that kernel services never
import this package.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from fulfillment_kernel.domain.policy import AllocationPolicy, FulfillmentPolicy

__all__ = [
    "AllocationPolicy",
    "FulfillmentConfig",
    "FulfillmentPolicy",
]


@dataclass(frozen=True)
class FulfillmentConfig:
    """A validated configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON of the source YAML.
    """

    config_id: str
    version: int
    allocation: AllocationPolicy = field(default_factory=AllocationPolicy)
    fulfillment: FulfillmentPolicy = field(default_factory=FulfillmentPolicy)
    description: str = ""
    checksum: str = ""
