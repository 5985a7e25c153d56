from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config import settings
from shared.config.database import get_db
from shared.security import get_current_user
from .schemas import ProductCreate, ProductPage, ProductResponse, ProductUpdate
from .service import ProductService

router = APIRouter(prefix="/products", tags=["Products"])


@router.get("", response_model=ProductPage)
async def list_products(
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=settings.PRODUCTS_PER_PAGE, ge=1, le=100),
    db: AsyncSession = Depends(get_db)
):
    items, total = await ProductService.list_products(db, page, per_page)
    return ProductPage(
        items=[ProductResponse.model_validate(p) for p in items],
        page=page,
        per_page=per_page,
        total=total,
    )


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ProductService.create_product(db, product)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_db)
):
    return await ProductService.get_product_by_id(db, product_id)


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    return await ProductService.update_product(db, product_id, payload)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int,
    user_id: int = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    await ProductService.delete_product(db, product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
