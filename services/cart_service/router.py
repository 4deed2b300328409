"""
Cart routes. The caller identity arrives as X-User-Id from the upstream
gateway; every route also requires the internal API key.
"""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.security.dependencies import get_current_user_id, verify_internal_api_key

from .schemas import CartItemCreate, CartItemUpdate, CartView, StockCheck
from .service import CartService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()  # For any public endpoints (e.g. health check)

@public_router.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "cart", "status": "running"}


@router.get("/", response_model=CartView)
async def get_cart(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await CartService.get_cart(db, user_id)


@router.get("/stock", response_model=StockCheck)
async def check_stock(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    return await CartService.check_stock(db, user_id)


@router.post("/items", response_model=CartView)
async def add_item(
    item: CartItemCreate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await CartService.add_item(db, user_id, item)
    return await CartService.get_cart(db, user_id)


@router.patch("/items/{item_id}", response_model=CartView)
async def update_item(
    item_id: int,
    payload: CartItemUpdate,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await CartService.update_item_quantity(db, user_id, item_id, payload.quantity)
    return await CartService.get_cart(db, user_id)


@router.delete("/items/{item_id}", response_model=CartView)
async def remove_item(
    item_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await CartService.remove_item(db, user_id, item_id)
    return await CartService.get_cart(db, user_id)


@router.delete("/items", status_code=204)
async def clear_cart(user_id: int = Depends(get_current_user_id), db: AsyncSession = Depends(get_db)):
    """Deletes all items in the cart."""
    await CartService.clear_cart(db, user_id)
    return Response(status_code=204)
