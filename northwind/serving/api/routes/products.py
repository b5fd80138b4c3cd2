"""
Products API Endpoints

Product catalog reads and tracked writes. Updates and deletes are guarded
by the product row version.
"""

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from northwind.database.changes import load_related_entities, save_changes
from northwind.database.connection import get_db_dependency
from northwind.database.models import Product
from northwind.serving.api.responses import GraphResponse, load_entity
from northwind.tracking import mark_added, mark_deleted

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("", response_class=GraphResponse)
async def list_products(
    category_id: Optional[int] = None,
    include_discontinued: bool = True,
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """List products with their categories."""
    query = select(Product).options(selectinload(Product.category))
    if category_id is not None:
        query = query.where(Product.category_id == category_id)
    if not include_discontinued:
        query = query.where(Product.discontinued.is_(False))

    result = await db.execute(query.order_by(Product.product_name))
    return GraphResponse(list(result.scalars().all()))


@router.get("/{product_id}", response_class=GraphResponse)
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """Get a product with its category."""
    result = await db.execute(
        select(Product)
        .options(selectinload(Product.category))
        .where(Product.product_id == product_id)
    )
    product = result.scalar_one_or_none()
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    return GraphResponse(product)


@router.post("", response_class=GraphResponse, status_code=201)
async def create_product(
    payload: Any = Body(...),
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """Insert a product; the body's tracking state is overridden to Added."""
    product = load_entity(payload, Product)
    mark_added(product)

    await save_changes(db, product)
    await load_related_entities(db, product)
    logger.info("Product created", product_id=product.product_id)

    return GraphResponse(product, status_code=201)


@router.put("", response_class=GraphResponse)
async def update_product(
    payload: Any = Body(...),
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """
    Apply a tracked product graph.

    Returns 409 when the supplied row version is stale.
    """
    product = load_entity(payload, Product)

    await save_changes(db, product)
    await load_related_entities(db, product)
    logger.info("Product updated", product_id=product.product_id)

    return GraphResponse(product)


@router.delete("/{product_id}", status_code=204)
async def delete_product(
    product_id: int,
    db: AsyncSession = Depends(get_db_dependency),
) -> Response:
    """Delete a product; its order details are removed by the store."""
    product = await db.get(Product, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    mark_deleted(product)
    await save_changes(db, product)
    logger.info("Product deleted", product_id=product_id)

    return Response(status_code=204)
