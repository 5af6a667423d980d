import os

# in-memory database shared through a single pooled connection
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ.setdefault("PUBLIC_BASE_URL", "http://storage.test")

import pytest
from fastapi.testclient import TestClient

from db import Base, engine, init_db

init_db()


@pytest.fixture(autouse=True)
def clean_db():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def client():
    from main import app

    return TestClient(app)


@pytest.fixture
def customer_payload():
    return {
        "customer_name": "Alice",
        "email": "alice@example.com",
        "phone": "5551234567",
        "address": "1 Main St",
    }


@pytest.fixture
def product_payload():
    return {
        "name": "Widget",
        "description": "A widget",
        "price": 9.99,
        "quantity": 10,
    }
