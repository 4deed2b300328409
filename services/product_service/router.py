from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from shared.config.database import get_db
from shared.security.dependencies import verify_internal_api_key
from .schemas import (
    BundleCreate,
    BundleResponse,
    ProductCreate,
    ProductResponse,
    StockDeduction,
    StockRestoration,
    StockUpdate,
)
from .service import ProductService, StockService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()  # For any public endpoints (e.g. health check)

@public_router.get("/health")
async def health_check():
    return {"service": "product", "status": "running"}


@router.post("/bundles", response_model=BundleResponse)
async def create_bundle(bundle: BundleCreate, db: AsyncSession = Depends(get_db)):
    return await ProductService.create_bundle(db, bundle)


@router.get("/bundles", response_model=list[BundleResponse])
async def list_bundles(db: AsyncSession = Depends(get_db)):
    return await ProductService.list_bundles(db)


@router.get("/bundles/{bundle_id}", response_model=BundleResponse)
async def get_bundle(bundle_id: int, db: AsyncSession = Depends(get_db)):
    return await ProductService.get_bundle(db, bundle_id)


@router.post("/bundles/{bundle_id}/reduce_stock", response_model=StockDeduction)
async def reduce_stock(bundle_id: int, payload: StockUpdate, db: AsyncSession = Depends(get_db)):
    return await StockService.deduct(db, [{"bundle_id": bundle_id, "quantity": payload.quantity}])


@router.post("/bundles/{bundle_id}/restore_stock", response_model=StockRestoration)
async def restore_stock(bundle_id: int, payload: StockUpdate, db: AsyncSession = Depends(get_db)):
    return await StockService.restore(db, [{"bundle_id": bundle_id, "quantity": payload.quantity}])


@router.post("/items", response_model=ProductResponse)
async def create_product(product: ProductCreate, db: AsyncSession = Depends(get_db)):
    return await ProductService.create_product(db, product)


@router.get("/items/{product_id}", response_model=ProductResponse)
async def get_product(product_id: int, db: AsyncSession = Depends(get_db)):
    return await ProductService.get_product(db, product_id)
