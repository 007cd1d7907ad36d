"""
Inventory routes

Thin HTTP surface over InventoryService. Domain errors propagate to the
ShopAdminError handler registered in shopadmin.main.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from shopadmin.api.deps import get_flag_gate, get_inventory_service
from shopadmin.core.feature_flags import FeatureFlagGate
from shopadmin.core.rate_limit import scoped_limit
from shopadmin.schemas.inventory import (
    BulkInventoryAdjustmentRequest,
    HolderReleaseResult,
    InventoryAdjustmentRequest,
    InventoryAdjustmentResult,
    InventoryHistory,
    InventoryMetrics,
    ProductInventoryInfo,
    ReservationCommit,
    ReservationCreate,
    ReservationResult,
    ReservationStatusResponse,
    StockAlert,
    VariantLabelFlagResponse,
    VariantLabelFlagUpdate,
)
from shopadmin.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/products/{product_id}/availability")
@scoped_limit("read")
async def check_availability(
    request: Request,
    product_id: str,
    variant_id: Optional[str] = Query(None, max_length=64),
    label: Optional[str] = Query(None, max_length=255),
    quantity: int = Query(1, ge=1, le=10000),
    service: InventoryService = Depends(get_inventory_service),
):
    """Whether `quantity` units of the variant are available (not held)."""
    available = await service.check_availability(product_id, variant_id, quantity, label=label)
    return {
        "product_id": product_id,
        "quantity": quantity,
        "available": available,
    }


@router.get("/products/{product_id}", response_model=ProductInventoryInfo)
@scoped_limit("read")
async def get_product_inventory(
    request: Request,
    product_id: str,
    variant_id: Optional[str] = Query(None, max_length=64),
    label: Optional[str] = Query(None, max_length=255),
    service: InventoryService = Depends(get_inventory_service),
):
    return await service.get_product_inventory_info(product_id, variant_id, label=label)


@router.get("/products/{product_id}/history", response_model=InventoryHistory)
@scoped_limit("read")
async def get_inventory_history(
    request: Request,
    product_id: str,
    variant_id: Optional[str] = Query(None, max_length=64),
    label: Optional[str] = Query(None, max_length=255),
    limit: int = Query(50, ge=1, le=100),
    service: InventoryService = Depends(get_inventory_service),
):
    """Stock movements for a product, or one variant of it, newest first."""
    return await service.get_inventory_history(product_id, variant_id, label=label, limit=limit)


@router.post("/reservations", response_model=ReservationResult)
@scoped_limit("reservation")
async def create_reservation(
    request: Request,
    payload: ReservationCreate,
    service: InventoryService = Depends(get_inventory_service),
):
    """
    Place a time-boxed hold.

    Insufficient stock is returned as success=false with HTTP 200; it is an
    expected outcome, not an error.
    """
    return await service.reserve_inventory(
        payload.product_id,
        payload.variant_id,
        payload.quantity,
        payload.holder_id,
        ttl_ms=payload.ttl_ms,
        label=payload.label,
    )


@router.post("/reservations/{reservation_id}/commit", response_model=ReservationStatusResponse)
@scoped_limit("reservation")
async def commit_reservation(
    request: Request,
    reservation_id: int,
    payload: Optional[ReservationCommit] = None,
    service: InventoryService = Depends(get_inventory_service),
):
    payload = payload or ReservationCommit()
    return await service.commit_reservation(
        reservation_id, order_id=payload.order_id, actor_id=payload.actor_id
    )


@router.post("/reservations/{reservation_id}/cancel", response_model=ReservationStatusResponse)
@scoped_limit("reservation")
async def cancel_reservation(
    request: Request,
    reservation_id: int,
    service: InventoryService = Depends(get_inventory_service),
):
    return await service.cancel_reservation(reservation_id)


@router.post("/reservations/holders/{holder_id}/cancel", response_model=HolderReleaseResult)
@scoped_limit("reservation")
async def cancel_holder_reservations(
    request: Request,
    holder_id: str,
    service: InventoryService = Depends(get_inventory_service),
):
    """Release every active hold of one cart or session."""
    return await service.cancel_holder_reservations(holder_id)


@router.post("/adjustments", response_model=InventoryAdjustmentResult)
@scoped_limit("adjustment")
async def adjust_inventory(
    request: Request,
    payload: InventoryAdjustmentRequest,
    service: InventoryService = Depends(get_inventory_service),
):
    return await service.adjust_inventory(
        payload.product_id,
        payload.variant_id,
        payload.adjustment,
        payload.reason,
        payload.actor_id,
        label=payload.label,
        metadata=payload.metadata,
    )


@router.post("/adjustments/bulk", response_model=List[InventoryAdjustmentResult])
@scoped_limit("adjustment")
async def bulk_adjust_inventory(
    request: Request,
    payload: BulkInventoryAdjustmentRequest,
    service: InventoryService = Depends(get_inventory_service),
):
    results = await service.bulk_adjust_inventory(payload.updates, payload.actor_id)
    failed = sum(1 for r in results if not r.success)
    if failed:
        logger.warning(f"Bulk adjustment: {failed}/{len(results)} entries failed")
    return results


@router.get("/metrics", response_model=InventoryMetrics)
async def get_inventory_metrics(
    service: InventoryService = Depends(get_inventory_service),
):
    return await service.get_inventory_metrics()


@router.get("/alerts/low-stock", response_model=List[StockAlert])
@scoped_limit("read")
async def get_low_stock_variants(
    request: Request,
    threshold: Optional[int] = Query(None, ge=0),
    limit: int = Query(50, ge=1, le=100),
    service: InventoryService = Depends(get_inventory_service),
):
    """In-stock variants at or below `threshold` (default: each product's own)."""
    return await service.get_low_stock_variants(threshold=threshold, limit=limit)


@router.get("/alerts/out-of-stock", response_model=List[StockAlert])
@scoped_limit("read")
async def get_out_of_stock_variants(
    request: Request,
    limit: int = Query(50, ge=1, le=100),
    service: InventoryService = Depends(get_inventory_service),
):
    return await service.get_out_of_stock_variants(limit=limit)


def _flag_response(gate: FeatureFlagGate) -> VariantLabelFlagResponse:
    return VariantLabelFlagResponse(
        enabled=gate.is_label_mode_enabled(),
        mode=gate.addressing_mode().value,
        source=gate.source(),
    )


@router.get("/feature-flags/variant-label", response_model=VariantLabelFlagResponse)
async def get_variant_label_flag(gate: FeatureFlagGate = Depends(get_flag_gate)):
    return _flag_response(gate)


@router.put("/feature-flags/variant-label", response_model=VariantLabelFlagResponse)
async def set_variant_label_flag(
    payload: VariantLabelFlagUpdate,
    gate: FeatureFlagGate = Depends(get_flag_gate),
):
    """Set a runtime override, or clear it with {"enabled": null}."""
    if payload.enabled is None:
        gate.clear_override()
    else:
        gate.set_override(payload.enabled)
    return _flag_response(gate)
