from shopadmin.models.product import Product, ProductVariant
from shopadmin.models.stock_reservation import StockReservation, ReservationStatus
from shopadmin.models.stock_movement import StockMovement, AdjustmentReason
