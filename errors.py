"""Custom exceptions for the storefront backend."""


class StoreError(Exception):
    """Base exception for all storefront errors."""

    pass


class DatabaseNotConfiguredError(StoreError):
    """Raised when DATABASE_URL / DATABASE_NAME are not set."""

    def __init__(self):
        super().__init__("Database not configured. Set DATABASE_URL and DATABASE_NAME.")


class InvalidIdError(StoreError):
    """Raised when an id is not a valid document id."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid id: {value}")


class _NotFound(StoreError):
    kind = "Record"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"{self.kind} not found: {record_id}")


class CustomerNotFoundError(_NotFound):
    kind = "Customer"


class ProductNotFoundError(_NotFound):
    kind = "Product"


class OrderNotFoundError(_NotFound):
    kind = "Order"


class VariantNotFoundError(StoreError):
    """Raised when a variant id doesn't exist on the product."""

    def __init__(self, product_id: str, variant_id: str):
        self.product_id = product_id
        self.variant_id = variant_id
        super().__init__(f"Variant {variant_id} not found on product {product_id}")


class EmptyCartError(StoreError):
    """Raised when checking out a cart with no items."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Cart is empty for session {session_id}")


class InsufficientStockError(StoreError):
    """Raised when a requested quantity exceeds the variant's stock."""

    def __init__(self, product_id: str, variant_id: str, requested: int, available: int):
        self.product_id = product_id
        self.variant_id = variant_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_id}/{variant_id}: "
            f"requested {requested}, available {available}"
        )


class InvariantViolationError(StoreError):
    """Raised when a write would break a cross-field invariant (e.g. order total)."""

    def __init__(self, field: str, expected, got):
        self.field = field
        self.expected = expected
        self.got = got
        super().__init__(f"{field} mismatch: expected {expected}, got {got}")


class InvalidRecordError(StoreError):
    """Raised when applying an update would leave a stored record invalid."""

    def __init__(self, kind: str, record_id: str, reason: str):
        self.kind = kind
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Update would leave {kind} {record_id} invalid: {reason}")
