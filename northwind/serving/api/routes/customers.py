"""
Customers API Endpoints

Read-only access to customers.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from northwind.database.connection import get_db_dependency
from northwind.database.models import Customer
from northwind.serving.api.responses import GraphResponse

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("", response_class=GraphResponse)
async def list_customers(
    country: Optional[str] = None,
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """List customers, optionally filtered by country."""
    query = select(Customer).order_by(Customer.customer_id)
    if country:
        query = query.where(Customer.country == country)

    customers = (await db.execute(query)).scalars().all()
    logger.debug("Customers retrieved", count=len(customers), country=country)

    return GraphResponse(list(customers))


@router.get("/{customer_id}", response_class=GraphResponse)
async def get_customer(
    customer_id: str,
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """Get a customer by id."""
    customer = await db.get(Customer, customer_id)
    if customer is None:
        raise HTTPException(status_code=404, detail="Customer not found")

    return GraphResponse(customer)
