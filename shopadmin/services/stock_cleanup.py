"""
Stock Reservation Cleanup Service

Background sweep that moves lapsed holds to 'expired' and invalidates the
cached inventory reads that still counted them. Expired holds already stop
counting against availability at their expiry time; the sweep only makes
the ledger state match and keeps rows for audit.

Run by the lifespan scheduler in shopadmin.main every
RESERVATION_SWEEP_INTERVAL_MINUTES, or standalone:

    python -m shopadmin.services.stock_cleanup
"""
import logging
from typing import Optional

from shopadmin.core.cache import build_inventory_cache
from shopadmin.services.inventory_service import InventoryService

logger = logging.getLogger(__name__)

_service: Optional[InventoryService] = None


def configure(service: InventoryService) -> None:
    """Bind the sweep to the application's InventoryService (shared cache)."""
    global _service
    _service = service


async def _get_service() -> InventoryService:
    global _service
    if _service is None:
        _service = InventoryService(cache=await build_inventory_cache())
    return _service


async def release_expired_reservations() -> dict:
    """
    Expire all lapsed held reservations.

    Returns:
        dict with counts of expired reservations, released units,
        invalidated variants and errors
    """
    stats = {
        "reservations_expired": 0,
        "units_released": 0,
        "variants_invalidated": 0,
        "errors": 0,
    }

    service = await _get_service()
    try:
        stats.update(await service.release_expired_reservations())
    except Exception as e:
        logger.error(f"Error in reservation expiry sweep: {e}", exc_info=True)
        stats["errors"] += 1
        return stats

    if stats["reservations_expired"] > 0:
        logger.info(
            f"Expired {stats['reservations_expired']} reservations, "
            f"released {stats['units_released']} units across {stats['variants_invalidated']} variants"
        )
    else:
        logger.debug("No expired reservations to sweep")

    return stats


async def get_reservation_stats() -> dict:
    """Current reservation statistics for monitoring."""
    service = await _get_service()
    if service.ledger is None:
        return {"enabled": False}
    stats = await service.ledger.get_stats()
    stats["enabled"] = True
    return stats


# For running as standalone script
if __name__ == "__main__":
    import asyncio

    async def main():
        print("Running reservation expiry sweep...")
        stats = await release_expired_reservations()
        print(f"Sweep complete: {stats}")

        print("\nCurrent reservation stats:")
        reservation_stats = await get_reservation_stats()
        for name, value in reservation_stats.items():
            print(f"  {name}: {value}")

    asyncio.run(main())
