from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from florist.db import get_db
from florist.errors import ProductNotFound
from florist.repositories.product_repo import ProductRepository
from florist.schemas.product_schema import ProductOut

router = APIRouter(tags=["catalogue"])


@router.get("", summary="List products")
def list_products(
    q: Optional[str] = Query(None, description="search term"),
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=200),
    db: Session = Depends(get_db),
):
    repo = ProductRepository(db)
    items, total = repo.list(q=q, category=category, page=page, size=size)
    return {
        "items": [ProductOut.from_product(p).model_dump() for p in items],
        "total": total,
        "page": page,
        "size": size,
    }


@router.get("/{product_id}", summary="Get product")
def get_product(product_id: int, db: Session = Depends(get_db)):
    p = ProductRepository(db).get(product_id)
    if not p or not p.is_active:
        raise ProductNotFound("Product not found")
    return ProductOut.from_product(p).model_dump()
