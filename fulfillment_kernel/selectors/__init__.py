"""Read-only selectors for the fulfillment kernel."""

from fulfillment_kernel.selectors.allocation_selector import AllocationSelector
from fulfillment_kernel.selectors.base import BaseSelector

__all__ = [
    "AllocationSelector",
    "BaseSelector",
]
