"""Pytest fixtures for storefront tests."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from cart import CartRegistry
from schemas import Customer, Product
from store import DataContext


@pytest.fixture
def mongo_db():
    """An in-memory Mongo database."""
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def context(mongo_db):
    return DataContext(mongo_db)


@pytest.fixture
def customer(context):
    return context.add_customer(Customer(
        name="Alice Johnson",
        email="alice@example.com",
        phone="+1 (555) 123-4567",
        address="123 Main St, Springfield, IL 62701",
    ))


@pytest.fixture
def headphones(context):
    return context.add_product(Product(
        name="Wireless Bluetooth Headphones",
        description="Premium quality headphones with noise cancellation",
        price=35.0,
        images=["https://example.com/headphones.jpg"],
        variants=[
            {"id": "v1", "name": "Black", "stock": 25},
            {"id": "v2", "name": "White", "stock": 15},
            {"id": "v3", "name": "Silver", "stock": 0},
        ],
    ))


@pytest.fixture
def api_client(context):
    """Test client wired to the in-memory database and a fresh cart registry."""
    from main import app, get_carts, get_context

    carts = CartRegistry()
    app.dependency_overrides[get_context] = lambda: context
    app.dependency_overrides[get_carts] = lambda: carts
    yield TestClient(app)
    app.dependency_overrides.clear()
