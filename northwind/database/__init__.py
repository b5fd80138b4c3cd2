"""
Database Module
"""
from .connection import init_database, close_database, get_db, get_db_dependency, create_schema
from .models import Base, Category, Customer, Order, OrderDetail, Product
from .changes import apply_changes, save_changes, load_related_entities

__all__ = [
    "init_database",
    "close_database",
    "get_db",
    "get_db_dependency",
    "create_schema",
    "Base",
    "Category",
    "Customer",
    "Order",
    "OrderDetail",
    "Product",
    "apply_changes",
    "save_changes",
    "load_related_entities",
]
