"""
Categories API Endpoints

Categories are returned together with their products.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from northwind.database.connection import get_db_dependency
from northwind.database.models import Category
from northwind.serving.api.responses import GraphResponse

router = APIRouter()


@router.get("", response_class=GraphResponse)
async def list_categories(
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """List all categories with their products."""
    result = await db.execute(
        select(Category)
        .options(selectinload(Category.products))
        .order_by(Category.category_name)
    )
    return GraphResponse(list(result.scalars().all()))


@router.get("/{category_id}", response_class=GraphResponse)
async def get_category(
    category_id: int,
    db: AsyncSession = Depends(get_db_dependency),
) -> GraphResponse:
    """Get a category with its products."""
    result = await db.execute(
        select(Category)
        .options(selectinload(Category.products))
        .where(Category.category_id == category_id)
    )
    category = result.scalar_one_or_none()
    if category is None:
        raise HTTPException(status_code=404, detail="Category not found")

    return GraphResponse(category)
