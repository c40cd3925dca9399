"""
Fixtures compartidas por los tests de todos los módulos.

La base de datos es SQLite en memoria: DATABASE_URL se define antes de
importar la aplicación para que el engine no apunte a PostgreSQL.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

import pytest
from decimal import Decimal
from uuid import uuid4
from fastapi.testclient import TestClient

from app.main import app
from app.database.database import Base, SessionLocal, sync_engine
from app.modules.products.models import Product


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def headers(tenant_id):
    return {"X-Company-ID": str(tenant_id)}


@pytest.fixture
def contact_id():
    return uuid4()


@pytest.fixture
def sample_product(db_session, tenant_id):
    """Producto con 10 unidades en stock"""
    product = Product(
        tenant_id=tenant_id,
        name="Mesa de roble",
        sku="MESA-001",
        price=Decimal("100.00"),
        stock_quantity=Decimal("10"),
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product
