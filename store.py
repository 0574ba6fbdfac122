"""
Data access context

DataContext keeps in-memory mirrors of the customer, product and order
collections and owns every write to them. Writes go to the store first and
then update the mirror, so readers (analytics, the dashboard endpoints) see
their own writes without a refresh.
"""

import logging
from typing import Dict, List, Optional

from pydantic import ValidationError
from pymongo.database import Database

from cart import Cart
from database import (
    create_document,
    delete_document,
    delete_documents,
    get_document,
    get_documents,
    update_document,
)
from errors import (
    CustomerNotFoundError,
    EmptyCartError,
    InsufficientStockError,
    InvalidRecordError,
    InvariantViolationError,
    OrderNotFoundError,
    ProductNotFoundError,
    VariantNotFoundError,
)
from schemas import (
    Customer,
    CustomerRecord,
    CustomerUpdate,
    DeliveryType,
    LineItem,
    Order,
    OrderRecord,
    OrderStatus,
    Product,
    ProductRecord,
    ProductUpdate,
)

logger = logging.getLogger(__name__)

CUSTOMERS = "customer"
PRODUCTS = "product"
ORDERS = "order"


def _load(model, docs: List[dict]) -> list:
    records = []
    for doc in docs:
        try:
            records.append(model.model_validate(doc))
        except ValidationError as e:
            logger.warning("Skipping malformed %s document %s: %s", model.__name__, doc.get("id"), e.error_count())
    return records


def _upsert(records: list, record) -> None:
    for index, existing in enumerate(records):
        if existing.id == record.id:
            records[index] = record
            return
    records.append(record)


def _check_update(record, changes: dict, kind: str) -> None:
    """Validate record + changes before anything is written."""
    try:
        type(record).model_validate({**record.model_dump(mode="json"), **changes})
    except ValidationError as e:
        raise InvalidRecordError(kind, record.id, e.errors()[0]["msg"])


def _money(value: float) -> float:
    return round(value, 2)


class DataContext:
    def __init__(self, database: Optional[Database] = None):
        self.db = database
        self.customers: List[CustomerRecord] = []
        self.products: List[ProductRecord] = []
        self.orders: List[OrderRecord] = []

    def refresh(self) -> "DataContext":
        """Reload all three mirrors from the store."""
        self.customers = _load(CustomerRecord, get_documents(CUSTOMERS, database=self.db))
        self.products = _load(ProductRecord, get_documents(PRODUCTS, database=self.db))
        self.orders = _load(OrderRecord, get_documents(ORDERS, database=self.db))
        logger.info(
            "Loaded %d customers, %d products, %d orders",
            len(self.customers), len(self.products), len(self.orders),
        )
        return self

    # -----------------------------
    # Customers
    # -----------------------------

    def get_customer(self, customer_id: str) -> CustomerRecord:
        doc = get_document(CUSTOMERS, customer_id, database=self.db)
        if doc is None:
            raise CustomerNotFoundError(customer_id)
        return CustomerRecord.model_validate(doc)

    def add_customer(self, customer: Customer) -> CustomerRecord:
        customer_id = create_document(CUSTOMERS, customer, database=self.db)
        record = self.get_customer(customer_id)
        self.customers.append(record)
        logger.info("Created customer %s", customer_id)
        return record

    def update_customer(self, customer_id: str, changes: CustomerUpdate) -> CustomerRecord:
        data = changes.model_dump(mode="json", exclude_unset=True)
        _check_update(self.get_customer(customer_id), data, "customer")
        doc = update_document(CUSTOMERS, customer_id, data, database=self.db)
        if doc is None:
            raise CustomerNotFoundError(customer_id)
        record = CustomerRecord.model_validate(doc)
        _upsert(self.customers, record)
        return record

    def delete_customer(self, customer_id: str) -> int:
        """Delete a customer and, by cascade, its orders. Returns the number of orders removed."""
        if not delete_document(CUSTOMERS, customer_id, database=self.db):
            raise CustomerNotFoundError(customer_id)
        removed = delete_documents(ORDERS, {"customer_id": customer_id}, database=self.db)
        self.customers = [c for c in self.customers if c.id != customer_id]
        self.orders = [o for o in self.orders if o.customer_id != customer_id]
        logger.info("Deleted customer %s and %d orders", customer_id, removed)
        return removed

    # -----------------------------
    # Products
    # -----------------------------

    def get_product(self, product_id: str) -> ProductRecord:
        doc = get_document(PRODUCTS, product_id, database=self.db)
        if doc is None:
            raise ProductNotFoundError(product_id)
        return ProductRecord.model_validate(doc)

    def add_product(self, product: Product) -> ProductRecord:
        stock = product.variant_stock()
        if product.total_stock is not None and product.total_stock != stock:
            raise InvariantViolationError("total_stock", stock, product.total_stock)
        product_id = create_document(PRODUCTS, product.model_copy(update={"total_stock": stock}), database=self.db)
        record = self.get_product(product_id)
        self.products.append(record)
        logger.info("Created product %s (%s)", product_id, product.name)
        return record

    def update_product(self, product_id: str, changes: ProductUpdate) -> ProductRecord:
        data = changes.model_dump(mode="json", exclude_unset=True)
        if changes.variants is not None:
            data["total_stock"] = sum(v.stock for v in changes.variants)
        _check_update(self.get_product(product_id), data, "product")
        doc = update_document(PRODUCTS, product_id, data, database=self.db)
        if doc is None:
            raise ProductNotFoundError(product_id)
        record = ProductRecord.model_validate(doc)
        _upsert(self.products, record)
        return record

    # -----------------------------
    # Orders
    # -----------------------------

    def get_order(self, order_id: str) -> OrderRecord:
        doc = get_document(ORDERS, order_id, database=self.db)
        if doc is None:
            raise OrderNotFoundError(order_id)
        return OrderRecord.model_validate(doc)

    def add_order(self, customer_id: str, items: List[LineItem], total: Optional[float] = None,
                  status: OrderStatus = OrderStatus.PROCESSING,
                  delivery_type: DeliveryType = DeliveryType.DELIVERY,
                  shipping_address: Optional[str] = None, notes: Optional[str] = None) -> OrderRecord:
        """Persist an order. The total is computed from the items; a supplied total must agree."""
        customer = self.get_customer(customer_id)
        computed = _money(sum(i.subtotal for i in items))
        if total is not None and _money(total) != computed:
            raise InvariantViolationError("total", computed, total)
        if delivery_type == DeliveryType.DELIVERY and not shipping_address:
            shipping_address = customer.address
        order = Order(
            customer_id=customer_id,
            items=items,
            total=computed,
            status=status,
            delivery_type=delivery_type,
            shipping_address=shipping_address,
            notes=notes,
        )
        order_id = create_document(ORDERS, order, database=self.db)
        record = self.get_order(order_id)
        self.orders.append(record)
        logger.info("Created order %s for customer %s, total %.2f", order_id, customer_id, computed)
        return record

    def update_order_status(self, order_id: str, status: OrderStatus) -> OrderRecord:
        doc = update_document(ORDERS, order_id, {"status": status.value}, database=self.db)
        if doc is None:
            raise OrderNotFoundError(order_id)
        record = OrderRecord.model_validate(doc)
        _upsert(self.orders, record)
        logger.info("Order %s is now %s", order_id, status.value)
        return record

    def checkout(self, session_id: str, cart: Cart, customer_id: str,
                 delivery_type: DeliveryType = DeliveryType.DELIVERY,
                 shipping_address: Optional[str] = None, notes: Optional[str] = None) -> OrderRecord:
        """
        Turn a cart into an order.

        Cart prices are snapshots taken at add time, so each line is repriced
        from the current product and its stock re-checked before anything is
        written. Variant stock is then decremented and the order created.
        """
        if not cart.items:
            raise EmptyCartError(session_id)
        self.get_customer(customer_id)

        products: Dict[str, ProductRecord] = {}
        items: List[LineItem] = []
        for item in cart.items:
            if item.product_id not in products:
                products[item.product_id] = self.get_product(item.product_id)
            product = products[item.product_id]
            variant = product.find_variant(item.variant_id)
            if variant is None:
                raise VariantNotFoundError(item.product_id, item.variant_id)
            if item.quantity > variant.stock:
                raise InsufficientStockError(item.product_id, item.variant_id, item.quantity, variant.stock)
            if item.price != product.price:
                logger.warning(
                    "Price of %s changed from %.2f to %.2f since it was added to the cart",
                    item.product_id, item.price, product.price,
                )
            items.append(item.model_copy(update={"price": product.price}))
            variant.stock -= item.quantity

        for product_id, product in products.items():
            variants = [v.model_dump() for v in product.variants]
            doc = update_document(
                PRODUCTS, product_id,
                {"variants": variants, "total_stock": product.variant_stock()},
                database=self.db,
            )
            _upsert(self.products, ProductRecord.model_validate(doc))

        record = self.add_order(customer_id, items, delivery_type=delivery_type,
                                shipping_address=shipping_address, notes=notes)
        logger.info("Checked out session %s into order %s", session_id, record.id)
        return record
