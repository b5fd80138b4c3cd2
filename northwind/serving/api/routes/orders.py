"""
Orders API Endpoints

Orders are exchanged as graphs including their customer, their details
and each detail's product. Writes apply the graph's tracking metadata.
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from northwind.database.changes import load_related_entities, save_changes
from northwind.database.connection import get_db_dependency
from northwind.database.models import Order, OrderDetail
from northwind.serving.api.responses import GraphResponse, load_entity
from northwind.tracking import mark_added, mark_deleted

router = APIRouter()
logger = structlog.get_logger(__name__)


def _order_graph_query():
    return select(Order).options(
        selectinload(Order.customer),
        selectinload(Order.order_details).selectinload(OrderDetail.product),
    )


@router.get("", response_class=GraphResponse)
async def list_orders(
    customer_id: Optional[str] = None,
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """List orders, optionally for a single customer."""
    query = _order_graph_query()
    if customer_id:
        query = query.where(Order.customer_id == customer_id)

    result = await db.execute(query.order_by(Order.order_date, Order.order_id))
    orders = list(result.scalars().all())
    logger.debug("Orders retrieved", count=len(orders), customer_id=customer_id)

    return GraphResponse(orders)


@router.get("/{order_id}", response_class=GraphResponse)
async def get_order(
    order_id: int,
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """Get an order with its customer, details and products."""
    result = await db.execute(_order_graph_query().where(Order.order_id == order_id))
    order = result.scalar_one_or_none()
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    return GraphResponse(order)


@router.post("", response_class=GraphResponse, status_code=201)
async def create_order(
    payload: Any = Body(...),
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """
    Insert an order.

    The order and its Unchanged details are inserted; the customer and
    products it references are left as they are.
    """
    order = load_entity(payload, Order)
    mark_added(order, include_children=True)

    await save_changes(db, order)
    await load_related_entities(db, order)
    logger.info("Order created", order_id=order.order_id, details=len(order.order_details))

    return GraphResponse(order, status_code=201)


@router.put("", response_class=GraphResponse)
async def update_order(
    payload: Any = Body(...),
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """
    Apply a tracked order graph.

    Details may be added, modified or deleted independently of the order.
    """
    order = load_entity(payload, Order)

    await save_changes(db, order)
    await load_related_entities(db, order)
    logger.info("Order updated", order_id=order.order_id)

    return GraphResponse(order)


@router.delete("/{order_id}", status_code=204)
async def delete_order(
    order_id: int,
    db: AsyncSession = Depends(get_db_dependency),
) -> Response:
    """Delete an order together with its details."""
    result = await db.execute(
        select(Order)
        .options(selectinload(Order.order_details))
        .where(Order.order_id == order_id)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")

    mark_deleted(order)
    for detail in order.order_details:
        mark_deleted(detail)

    await save_changes(db, order)
    logger.info("Order deleted", order_id=order_id)

    return Response(status_code=204)
