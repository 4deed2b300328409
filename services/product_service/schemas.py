from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class BundleCreate(BaseModel):
    title: str
    price: Decimal = Field(ge=0)
    stock_limit: Optional[int] = Field(default=None, ge=0)
    weight: Optional[int] = Field(default=None, gt=0)


class BundleResponse(BaseModel):
    id: int
    title: str
    price: Decimal
    stock_limit: Optional[int]
    weight: Optional[int]
    is_active: bool

    class Config:
        from_attributes = True


class ProductCreate(BaseModel):
    title: str
    price: Decimal = Field(ge=0)
    stock: Optional[int] = Field(default=None, ge=0)
    weight: Optional[int] = Field(default=None, gt=0)


class ProductResponse(BaseModel):
    id: int
    title: str
    price: Decimal
    stock: Optional[int]
    weight: Optional[int]

    class Config:
        from_attributes = True


class StockUpdate(BaseModel):
    quantity: int = Field(gt=0)


class StockChange(BaseModel):
    bundle_id: Optional[int] = None
    product_id: Optional[int] = None
    title: Optional[str] = None
    quantity: int
    previous: Optional[int] = None
    new: Optional[int] = None
    unlimited: bool = False
    is_now_out_of_stock: bool = False


class StockFailure(BaseModel):
    bundle_id: Optional[int] = None
    product_id: Optional[int] = None
    quantity: int
    error: str


class StockDeduction(BaseModel):
    success: bool
    deducted: List[StockChange] = []
    failed: List[StockFailure] = []


class StockRestoration(BaseModel):
    success: bool
    restored: List[StockChange] = []
    failed: List[StockFailure] = []
