import logging
import os
import random
import sys
from datetime import datetime, timedelta, timezone
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

import database
from analytics import RANGE_CHOICES, compute_aggregates, compute_sales_overview
from cart import Cart, CartRegistry, clamp_quantity, line_item_for, validate_selection
from errors import (
    CustomerNotFoundError,
    DatabaseNotConfiguredError,
    EmptyCartError,
    InsufficientStockError,
    InvalidIdError,
    InvalidRecordError,
    InvariantViolationError,
    OrderNotFoundError,
    ProductNotFoundError,
    StoreError,
    VariantNotFoundError,
)
from schemas import (
    AggregateReport,
    Customer,
    CustomerUpdate,
    DeliveryType,
    LineItem,
    OrderStatus,
    OrderStatusUpdate,
    Product,
    ProductUpdate,
    SalesOverview,
)
from store import CUSTOMERS, ORDERS, PRODUCTS, DataContext

logger = logging.getLogger("storefront")


def setup_logging():
    root = logging.getLogger()
    root.setLevel(os.getenv("LOG_LEVEL", "INFO").upper())
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - [%(levelname)-7s] - %(message)s"))
        root.addHandler(handler)


setup_logging()

app = FastAPI(title="Storefront SaaS API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -----------------------------
# Dependencies
# -----------------------------

_context: Optional[DataContext] = None
_carts = CartRegistry()


def get_context() -> DataContext:
    global _context
    if database.db is None:
        raise DatabaseNotConfiguredError()
    if _context is None:
        _context = DataContext(database.db).refresh()
    return _context


def get_carts() -> CartRegistry:
    return _carts


# -----------------------------
# Errors
# -----------------------------

ERROR_STATUS_CODES = {
    DatabaseNotConfiguredError: 503,
    InvalidIdError: 400,
    CustomerNotFoundError: 404,
    ProductNotFoundError: 404,
    OrderNotFoundError: 404,
    VariantNotFoundError: 404,
    EmptyCartError: 400,
    InsufficientStockError: 409,
    InvariantViolationError: 422,
    InvalidRecordError: 422,
}


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Map StoreError subclasses to HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    else:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__},
    )


@app.get("/")
def read_root():
    return {"message": "Storefront SaaS Backend Running"}


@app.get("/test")
def test_database():
    db = database.db
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
            response["database_name"] = db.name if hasattr(db, 'name') else "✅ Connected"
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
        else:
            response["database"] = "⚠️ Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:50]}"

    return response


# -----------------------------
# Store: Customers
# -----------------------------

@app.post("/api/customers", status_code=201)
def create_customer(customer: Customer, context: DataContext = Depends(get_context)):
    return context.add_customer(customer)


@app.get("/api/customers")
def list_customers(limit: int = Query(50, ge=1), context: DataContext = Depends(get_context)):
    return context.customers[:limit]


@app.get("/api/customers/{customer_id}")
def get_customer(customer_id: str, context: DataContext = Depends(get_context)):
    return context.get_customer(customer_id)


@app.patch("/api/customers/{customer_id}")
def update_customer(customer_id: str, changes: CustomerUpdate, context: DataContext = Depends(get_context)):
    return context.update_customer(customer_id, changes)


@app.delete("/api/customers/{customer_id}")
def delete_customer(customer_id: str, context: DataContext = Depends(get_context)):
    removed = context.delete_customer(customer_id)
    return {"deleted": True, "orders_deleted": removed}


# -----------------------------
# Store: Products
# -----------------------------

@app.post("/api/products", status_code=201)
def create_product(product: Product, context: DataContext = Depends(get_context)):
    return context.add_product(product)


@app.get("/api/products")
def list_products(limit: int = Query(50, ge=1), context: DataContext = Depends(get_context)):
    return context.products[:limit]


@app.get("/api/products/{product_id}")
def get_product(product_id: str, context: DataContext = Depends(get_context)):
    return context.get_product(product_id)


@app.patch("/api/products/{product_id}")
def update_product(product_id: str, changes: ProductUpdate, context: DataContext = Depends(get_context)):
    return context.update_product(product_id, changes)


# -----------------------------
# Store: Orders
# -----------------------------

class CreateOrderPayload(BaseModel):
    customer_id: str
    items: List[LineItem] = Field(..., min_length=1)
    total: Optional[float] = None
    status: OrderStatus = OrderStatus.PROCESSING
    delivery_type: DeliveryType = DeliveryType.DELIVERY
    shipping_address: Optional[str] = None
    notes: Optional[str] = None


@app.post("/api/orders", status_code=201)
def create_order(payload: CreateOrderPayload, context: DataContext = Depends(get_context)):
    return context.add_order(**payload.model_dump(exclude={"items"}), items=payload.items)


@app.get("/api/orders")
def list_orders(limit: int = Query(50, ge=1), status: Optional[OrderStatus] = None,
                context: DataContext = Depends(get_context)):
    orders = [o for o in context.orders if status is None or o.status == status]
    return orders[:limit]


@app.get("/api/orders/{order_id}")
def get_order(order_id: str, context: DataContext = Depends(get_context)):
    return context.get_order(order_id)


@app.patch("/api/orders/{order_id}/status")
def update_order_status(order_id: str, payload: OrderStatusUpdate, context: DataContext = Depends(get_context)):
    return context.update_order_status(order_id, payload.status)


# -----------------------------
# Cart
# -----------------------------

class AddToCartPayload(BaseModel):
    product_id: str
    variant_id: str
    quantity: int = 1


class UpdateQuantityPayload(BaseModel):
    quantity: int


class CheckoutPayload(BaseModel):
    customer_id: str
    delivery_type: DeliveryType = DeliveryType.DELIVERY
    shipping_address: Optional[str] = None
    notes: Optional[str] = None


def cart_view(cart: Cart) -> dict:
    return {
        "items": [dict(i.model_dump(), subtotal=round(i.subtotal, 2)) for i in cart.items],
        "count": cart.total_quantity(),
        "total": round(cart.total_price(), 2),
    }


@app.get("/api/cart/{session_id}")
def get_cart(session_id: str, carts: CartRegistry = Depends(get_carts)):
    return cart_view(carts.get(session_id))


@app.post("/api/cart/{session_id}/items", status_code=201)
def add_to_cart(session_id: str, payload: AddToCartPayload,
                carts: CartRegistry = Depends(get_carts), context: DataContext = Depends(get_context)):
    product = context.get_product(payload.product_id)
    if not validate_selection(product, payload.variant_id, payload.quantity):
        raise HTTPException(status_code=400, detail="Select an available variant and a quantity within stock")
    item = line_item_for(product.id, product, payload.variant_id, payload.quantity)
    cart = carts.put(session_id, carts.get(session_id).add_item(item))
    return cart_view(cart)


@app.patch("/api/cart/{session_id}/items/{product_id}/{variant_id}")
def update_cart_item(session_id: str, product_id: str, variant_id: str, payload: UpdateQuantityPayload,
                     carts: CartRegistry = Depends(get_carts), context: DataContext = Depends(get_context)):
    quantity = payload.quantity
    if quantity > 0:
        variant = context.get_product(product_id).find_variant(variant_id)
        quantity = clamp_quantity(quantity, variant.stock if variant else 0)
    cart = carts.put(session_id, carts.get(session_id).update_quantity(product_id, variant_id, quantity))
    return cart_view(cart)


@app.delete("/api/cart/{session_id}/items/{product_id}/{variant_id}")
def remove_cart_item(session_id: str, product_id: str, variant_id: str, carts: CartRegistry = Depends(get_carts)):
    cart = carts.put(session_id, carts.get(session_id).remove_item(product_id, variant_id))
    return cart_view(cart)


@app.delete("/api/cart/{session_id}")
def clear_cart(session_id: str, carts: CartRegistry = Depends(get_carts)):
    carts.discard(session_id)
    return cart_view(Cart())


@app.post("/api/cart/{session_id}/checkout", status_code=201)
def checkout(session_id: str, payload: CheckoutPayload,
             carts: CartRegistry = Depends(get_carts), context: DataContext = Depends(get_context)):
    order = context.checkout(session_id, carts.get(session_id), **payload.model_dump())
    carts.discard(session_id)
    return order


# -----------------------------
# Analytics
# -----------------------------

TimeRange = Literal["7days", "30days", "90days"]


@app.get("/api/analytics", response_model=AggregateReport)
def analytics(time_range: TimeRange = Query("7days", alias="range"), refresh: bool = False,
              context: DataContext = Depends(get_context)):
    if refresh:
        context.refresh()
    return compute_aggregates(context.orders, context.customers, context.products, RANGE_CHOICES[time_range])


@app.get("/api/analytics/sales", response_model=SalesOverview)
def analytics_sales(time_range: TimeRange = Query("30days", alias="range"),
                    context: DataContext = Depends(get_context)):
    return compute_sales_overview(context.orders, RANGE_CHOICES[time_range])


# -----------------------------
# Seed demo data
# -----------------------------

SAMPLE_CUSTOMERS = [
    {"name": "Alice Johnson", "email": "alice@example.com", "phone": "+1 (555) 123-4567",
     "address": "123 Main St, Springfield, IL 62701"},
    {"name": "Bob Smith", "email": "bob@example.com", "phone": "+1 (555) 234-5678",
     "address": "456 Oak Ave, Springfield, IL 62702"},
    {"name": "Carol Davis", "email": "carol@example.com", "phone": "+1 (555) 345-6789",
     "address": "789 Pine Rd, Springfield, IL 62703"},
]

SAMPLE_PRODUCTS = [
    {"name": "Wireless Bluetooth Headphones", "description": "Premium quality headphones with noise cancellation",
     "price": 35.00, "images": ["https://images.unsplash.com/photo-1505740420928-5e560c06d30e?w=400&h=400&fit=crop"],
     "variants": [{"id": "v1", "name": "Black", "stock": 25}, {"id": "v2", "name": "White", "stock": 15},
                  {"id": "v3", "name": "Silver", "stock": 5}]},
    {"name": "Adjustable Laptop Stand", "description": "Ergonomic laptop stand for better posture",
     "price": 17.50, "images": ["https://images.unsplash.com/photo-1527864550417-7fd91fc51a46?w=400&h=400&fit=crop"],
     "variants": [{"id": "v1", "name": "Natural Wood", "stock": 13}, {"id": "v2", "name": "Black", "stock": 10}]},
    {"name": "USB-C Cable 6ft", "description": "Fast charging USB-C to USB-C cable",
     "price": 5.00, "images": ["https://images.unsplash.com/photo-1558618666-fcd25c85cd64?w=400&h=400&fit=crop"],
     "variants": [{"id": "v1", "name": "Black", "stock": 70}, {"id": "v2", "name": "White", "stock": 50}]},
    {"name": "Portable Bluetooth Speaker", "description": "Waterproof speaker with 12-hour battery life",
     "price": 50.00, "images": ["https://images.unsplash.com/photo-1608043152269-423dbba4e7e1?w=400&h=400&fit=crop"],
     "variants": [{"id": "v1", "name": "Red", "stock": 3}, {"id": "v2", "name": "Blue", "stock": 2},
                  {"id": "v3", "name": "Black", "stock": 3}]},
]


@app.post("/api/seed")
def seed_demo_data(orders: int = Query(40, ge=0, le=500), context: DataContext = Depends(get_context)):
    db = context.db
    now = datetime.now(timezone.utc)

    # Insert catalogs if empty
    if db[PRODUCTS].count_documents({}) == 0:
        for p in SAMPLE_PRODUCTS:
            context.add_product(Product(**p))

    if db[CUSTOMERS].count_documents({}) == 0:
        for c in SAMPLE_CUSTOMERS:
            record = Customer(**c).model_dump(mode="json")
            record["created_at"] = now - timedelta(days=random.randint(0, 60))
            database.create_document(CUSTOMERS, record, database=db)

    context.refresh()

    # Create random orders over the last 30 days
    for _ in range(orders if context.customers and context.products else 0):
        items = []
        for product in random.sample(context.products, k=random.randint(1, min(3, len(context.products)))):
            variant = random.choice(product.variants) if product.variants else None
            if variant is None:
                continue
            items.append(line_item_for(product.id, product, variant.id, random.randint(1, 3)))
        if not items:
            continue
        customer = random.choice(context.customers)
        delivery_type = random.choice(list(DeliveryType))
        order_doc = {
            "customer_id": customer.id,
            "items": [i.model_dump() for i in items],
            "total": round(sum(i.subtotal for i in items), 2),
            "status": random.choice(list(OrderStatus)).value,
            "delivery_type": delivery_type.value,
            "shipping_address": customer.address if delivery_type == DeliveryType.DELIVERY else None,
            "notes": "Sample order",
            "created_at": now - timedelta(days=random.randint(0, 29), hours=random.randint(0, 23)),
        }
        database.create_document(ORDERS, order_doc, database=db)

    context.refresh()
    return {"status": "ok", "message": "Seeded demo data", "counts": {
        "customers": len(context.customers),
        "products": len(context.products),
        "orders": len(context.orders),
    }}


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
