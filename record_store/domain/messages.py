"""User-facing response messages."""

# Records
RECORD_CREATED = "Record created successfully"
RECORD_UPDATED = "Record updated successfully"
RECORD_DELETED = "Record deleted successfully"
RECORD_RETRIEVED = "Record retrieved successfully"
RECORDS_RETRIEVED = "Records retrieved successfully"
DUPLICATE_RECORD = "Record already exists with this artist, album, and format combination"
UPDATE_DUPLICATE_RECORD = "Update would create a duplicate record with the same artist, album, and format"

# Orders
ORDER_CREATED = "Order created successfully"
ORDER_UPDATED = "Order updated successfully"
ORDER_DELETED = "Order deleted successfully"
ORDER_RETRIEVED = "Order retrieved successfully"
ORDERS_RETRIEVED = "Orders retrieved successfully"
INSUFFICIENT_STOCK = "Not enough records in stock"
STOCK_CONFLICT = "Stock for this record is being modified concurrently, please retry"
ORDER_QUANTITY_LOCKED = "Quantity can only be changed while the order is pending"
ORDER_CANCEL_WITH_QUANTITY = "An order cannot be cancelled and resized in the same update"

# MusicBrainz
MUSICBRAINZ_FETCH_ERROR = "Failed to fetch track list from MusicBrainz"

# Access
FORBIDDEN = "You are not allowed to access this resource"
ADMIN_ONLY = "Only administrators can perform this action"
MISSING_TOKEN = "Missing bearer token"
INVALID_TOKEN = "Invalid or expired token"

INTERNAL_SERVER = "Oops! The problem is not on your side. Hang on, we will fix this soon"


def record_not_found(record_id) -> str:
    return f"Record with ID {record_id} not found"


def order_not_found(order_id) -> str:
    return f"Order with ID {order_id} not found"


def invalid_mbid(mbid: str) -> str:
    return f"Invalid MusicBrainz ID (MBID) format: {mbid}"


def mbid_not_found(mbid: str) -> str:
    return f"MusicBrainz ID (MBID) {mbid} not found in MusicBrainz database"


def invalid_status_transition(current: str, requested: str) -> str:
    return f"Order status cannot change from {current} to {requested}"


def record_has_pending_orders(record_id, pending: int) -> str:
    return f"Record with ID {record_id} still has {pending} pending order(s)"
