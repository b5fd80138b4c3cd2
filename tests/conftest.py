"""
Test Suite Configuration
"""
import pytest
from decimal import Decimal
from typing import AsyncGenerator

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from northwind.config import Settings
from northwind.database.connection import (
    create_engine_for_url,
    create_schema,
    create_session_factory,
    get_db_dependency,
)
from northwind.database.models import Customer, Order, OrderDetail, Product
from northwind.ingestion.seed_db import seed_database


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
async def test_engine():
    """Create an in-memory database with the schema; foreign keys are enforced"""
    engine = create_engine_for_url("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return create_session_factory(test_engine)


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def seeded_db(test_db) -> AsyncSession:
    """Session over the sample data; the identity map starts out empty"""
    await seed_database(test_db)
    test_db.expunge_all()
    return test_db


@pytest.fixture
async def client(seeded_db, session_factory) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for the API, backed by the seeded test database"""
    from northwind.main import app

    async def override_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db_dependency] = override_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def customer_graph() -> Customer:
    """Detached customer with two orders, each with one detail sharing a product"""
    chai = Product(
        product_id=1,
        product_name="Chai",
        category_id=1,
        unit_price=Decimal("18.00"),
        discontinued=False,
        row_version=b"\x01",
    )
    customer = Customer(customer_id="ALFKI", company_name="Alfreds Futterkiste", country="Germany")
    for order_id, quantity in ((10643, 15), (10692, 20)):
        order = Order(order_id=order_id, customer=customer, freight=Decimal("29.46"))
        OrderDetail(
            order_detail_id=order_id,
            order=order,
            product=chai,
            product_id=1,
            unit_price=Decimal("18.00"),
            quantity=quantity,
            discount=0.0,
        )
    return customer
