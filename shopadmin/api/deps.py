"""
API dependencies
"""
from fastapi import HTTPException, Request, status

from shopadmin.core.feature_flags import FeatureFlagGate, variant_label_flag
from shopadmin.services.inventory_service import InventoryService


def get_inventory_service(request: Request) -> InventoryService:
    """InventoryService built during application startup."""
    service = getattr(request.app.state, "inventory_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inventory service not initialised"
        )
    return service


def get_flag_gate() -> FeatureFlagGate:
    return variant_label_flag
