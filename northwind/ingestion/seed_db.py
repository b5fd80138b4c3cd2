"""
Seed Data Loader

Loads the Northwind slim sample data from CSV files into an empty database.
Runs on application startup in development and as a standalone script:

    python -m northwind.ingestion.seed_db
"""

import asyncio
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import polars as pl
import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from northwind.database.connection import close_database, get_db, init_database
from northwind.database.models import Category, Customer, Order, OrderDetail, Product

logger = structlog.get_logger(__name__)

SEED_DIR = Path(__file__).resolve().parent.parent / "data" / "seed"


def _decimal(value: Optional[str]) -> Optional[Decimal]:
    return None if value is None or value == "" else Decimal(value)


def _read(name: str, schema_overrides: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    df = pl.read_csv(SEED_DIR / f"{name}.csv", schema_overrides=schema_overrides)
    logger.debug("Seed file read", file=name, rows=len(df))
    return df.to_dicts()


def load_categories() -> List[Category]:
    return [Category(**row) for row in _read("categories")]


def load_products() -> List[Product]:
    rows = _read("products", {"unit_price": pl.Utf8, "discontinued": pl.Utf8})
    return [
        Product(
            product_id=row["product_id"],
            product_name=row["product_name"],
            category_id=row["category_id"],
            unit_price=_decimal(row["unit_price"]),
            discontinued=row["discontinued"].strip().lower() == "true",
        )
        for row in rows
    ]


def load_customers() -> List[Customer]:
    return [Customer(**row) for row in _read("customers", {"customer_id": pl.Utf8})]


def load_orders() -> List[Order]:
    df = pl.read_csv(
        SEED_DIR / "orders.csv",
        schema_overrides={"order_date": pl.Utf8, "shipped_date": pl.Utf8, "freight": pl.Utf8},
    )
    df = df.with_columns(
        pl.col("order_date").str.strptime(pl.Datetime, "%Y-%m-%d"),
        pl.col("shipped_date").str.strptime(pl.Datetime, "%Y-%m-%d"),
    )
    return [
        Order(
            order_id=row["order_id"],
            customer_id=row["customer_id"],
            order_date=row["order_date"],
            shipped_date=row["shipped_date"],
            ship_via=row["ship_via"],
            freight=_decimal(row["freight"]),
        )
        for row in df.to_dicts()
    ]


def load_order_details() -> List[OrderDetail]:
    rows = _read("order_details", {"unit_price": pl.Utf8, "discount": pl.Float64})
    return [
        OrderDetail(
            order_detail_id=row["order_detail_id"],
            order_id=row["order_id"],
            product_id=row["product_id"],
            unit_price=_decimal(row["unit_price"]),
            quantity=row["quantity"],
            discount=row["discount"],
        )
        for row in rows
    ]


async def seed_database(db: AsyncSession) -> bool:
    """
    Insert the sample data unless the store already holds categories.

    Returns:
        bool: True when data was inserted
    """
    existing = await db.scalar(select(func.count()).select_from(Category))
    if existing:
        logger.info("Seed skipped, database already populated", categories=existing)
        return False

    loaders = {
        "categories": load_categories,
        "products": load_products,
        "customers": load_customers,
        "orders": load_orders,
        "order_details": load_order_details,
    }
    counts = {}
    for name, loader in loaders.items():
        entities = loader()
        db.add_all(entities)
        counts[name] = len(entities)

    await db.commit()
    logger.info("Database seeded", **counts)
    return True


async def main():
    logger.info("Starting database seeding...")
    await init_database(create_tables=True)

    try:
        async with get_db() as db:
            await seed_database(db)
        logger.info("Database seeding completed successfully!")
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        raise
    finally:
        await close_database()


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
