# Domain services: variant addressing, stock aggregation, reservations
