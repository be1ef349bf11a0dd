"""
Config -> Kernel bridges.

Builds kernel services from a FulfillmentConfig.  These live in
fulfillment_config (the producer) because the kernel must never import
fulfillment_config.

Usage:
    from fulfillment_config.bridges import build_allocation_service

    service = build_allocation_service(session)
    result = service.allocate_inventory(...)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from fulfillment_config import get_active_config
from fulfillment_config.schema import FulfillmentConfig
from fulfillment_kernel.domain.clock import Clock
from fulfillment_kernel.services.allocation_service import AllocationService


def build_allocation_service(
    session: Session,
    config: FulfillmentConfig | None = None,
    clock: Clock | None = None,
    auto_commit: bool = True,
) -> AllocationService:
    """AllocationService governed by ``config`` (the active config when omitted)."""
    config = config or get_active_config()
    return AllocationService(
        session,
        allocation_policy=config.allocation,
        fulfillment_policy=config.fulfillment,
        clock=clock,
        auto_commit=auto_commit,
    )
