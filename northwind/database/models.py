"""
Database Models - Northwind Slim

Five related entities forming a bidirectional navigation graph:

- Category 1..* Product
- Customer 1..* Order
- Order 1..* OrderDetail
- OrderDetail *..1 Product

Table and column names follow the Northwind schema (PascalCase); Python
attributes are snake_case. Each model also carries the runtime-only change
tracking fields from TrackableMixin, which are not mapped.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    LargeBinary,
    Numeric,
    SmallInteger,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from northwind.tracking.state import TrackableMixin

ROW_VERSION_SIZE = 8


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def next_row_version(current: Optional[bytes]) -> bytes:
    """
    Version generator for optimistic concurrency tokens.

    Treats the token as a big-endian counter; a missing token starts at 1.
    """
    value = int.from_bytes(current, "big") if current else 0
    return ((value + 1) % (1 << (8 * ROW_VERSION_SIZE))).to_bytes(ROW_VERSION_SIZE, "big")


class Category(TrackableMixin, Base):
    """Product category"""
    __tablename__ = "Categories"

    category_id: Mapped[int] = mapped_column("CategoryId", Integer, primary_key=True, autoincrement=True)
    category_name: Mapped[Optional[str]] = mapped_column("CategoryName", String)

    products: Mapped[List["Product"]] = relationship(back_populates="category")


class Customer(TrackableMixin, Base):
    """Customer keyed by a natural string id (e.g. 'ALFKI')"""
    __tablename__ = "Customers"

    customer_id: Mapped[str] = mapped_column("CustomerId", String, primary_key=True)
    company_name: Mapped[Optional[str]] = mapped_column("CompanyName", String)
    contact_name: Mapped[Optional[str]] = mapped_column("ContactName", String)
    city: Mapped[Optional[str]] = mapped_column("City", String)
    country: Mapped[Optional[str]] = mapped_column("Country", String)

    orders: Mapped[List["Order"]] = relationship(back_populates="customer")


class Order(TrackableMixin, Base):
    """
    Customer order

    Details are deleted with their order, both by the ORM when the collection
    is loaded and by the database otherwise.
    """
    __tablename__ = "Orders"

    order_id: Mapped[int] = mapped_column("OrderId", Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[Optional[str]] = mapped_column(
        "CustomerId", String, ForeignKey("Customers.CustomerId"), index=True
    )
    order_date: Mapped[Optional[datetime]] = mapped_column("OrderDate", DateTime)
    shipped_date: Mapped[Optional[datetime]] = mapped_column("ShippedDate", DateTime)
    ship_via: Mapped[Optional[int]] = mapped_column("ShipVia", Integer)
    freight: Mapped[Optional[Decimal]] = mapped_column("Freight", Numeric(18, 2))

    customer: Mapped[Optional["Customer"]] = relationship(back_populates="orders")
    order_details: Mapped[List["OrderDetail"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class OrderDetail(TrackableMixin, Base):
    """Order line item"""
    __tablename__ = "OrderDetails"

    order_detail_id: Mapped[int] = mapped_column("OrderDetailId", Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(
        "OrderId", Integer, ForeignKey("Orders.OrderId", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        "ProductId", Integer, ForeignKey("Products.ProductId", ondelete="CASCADE"), nullable=False, index=True
    )
    unit_price: Mapped[Decimal] = mapped_column("UnitPrice", Numeric(18, 2), nullable=False)
    quantity: Mapped[int] = mapped_column("Quantity", SmallInteger, nullable=False)
    discount: Mapped[float] = mapped_column("Discount", Float, nullable=False, default=0.0)

    order: Mapped["Order"] = relationship(back_populates="order_details")
    product: Mapped["Product"] = relationship()


class Product(TrackableMixin, Base):
    """
    Catalog product

    row_version is an optimistic concurrency token: every UPDATE and DELETE
    is qualified with the version the caller last saw, and a successful
    UPDATE advances it.
    """
    __tablename__ = "Products"

    product_id: Mapped[int] = mapped_column("ProductId", Integer, primary_key=True, autoincrement=True)
    product_name: Mapped[Optional[str]] = mapped_column("ProductName", String)
    category_id: Mapped[Optional[int]] = mapped_column(
        "CategoryId", Integer, ForeignKey("Categories.CategoryId"), index=True
    )
    unit_price: Mapped[Optional[Decimal]] = mapped_column("UnitPrice", Numeric(18, 2))
    discontinued: Mapped[bool] = mapped_column("Discontinued", Boolean, nullable=False, default=False)
    row_version: Mapped[bytes] = mapped_column("RowVersion", LargeBinary, nullable=False)

    category: Mapped[Optional["Category"]] = relationship(back_populates="products")

    __mapper_args__ = {
        "version_id_col": row_version,
        "version_id_generator": next_row_version,
    }


ENTITY_TYPES = (Category, Customer, Order, OrderDetail, Product)
