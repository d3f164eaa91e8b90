"""API routes for the product catalogue."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from spendlog.api.dependencies import get_db_session
from spendlog.models.schemas import ProductRead
from spendlog.models.tables import Product

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=List[ProductRead])
async def list_products(db: AsyncSession = Depends(get_db_session)) -> List[ProductRead]:
    result = await db.execute(select(Product).order_by(Product.id))
    return [ProductRead.model_validate(p) for p in result.scalars().all()]
