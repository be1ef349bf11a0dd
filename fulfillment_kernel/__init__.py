"""
Fulfillment Kernel

The inventory allocation and fulfillment core:
- Lot selection under FIFO / FEFO
- Atomic, conflict-detecting stock reservation
- Append-only, checksummed inventory activity log
- Constrained order / shipment / fulfillment lifecycle
"""

__version__ = "0.1.0"
