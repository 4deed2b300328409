from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator


class CartItemCreate(BaseModel):
    bundle_id: Optional[int] = None
    product_id: Optional[int] = None
    quantity: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def exactly_one_reference(self):
        if (self.bundle_id is None) == (self.product_id is None):
            raise ValueError("Provide exactly one of bundle_id or product_id")
        return self


class CartItemUpdate(BaseModel):
    quantity: int


class CartLine(BaseModel):
    line_id: int
    bundle_id: Optional[int] = None
    product_id: Optional[int] = None
    title: Optional[str] = None
    quantity: int
    price: Decimal = Decimal("0")
    weight: Optional[int] = None
    stock: Optional[int] = None
    item_total: Decimal = Decimal("0")
    available: bool = True

    @property
    def bundle_origin(self) -> str:
        return "bundle" if self.bundle_id is not None else "single"


class CartView(BaseModel):
    cart_id: int
    user_id: int
    lines: List[CartLine] = []
    item_count: int = 0
    subtotal: Decimal = Decimal("0")


class StockCheckItem(BaseModel):
    line_id: int
    bundle_id: Optional[int] = None
    product_id: Optional[int] = None
    title: Optional[str] = None
    required_qty: int
    available_stock: Optional[int] = None # None = unlimited
    in_stock: bool


class StockCheck(BaseModel):
    all_in_stock: bool
    items: List[StockCheckItem] = []
    out_of_stock_items: List[StockCheckItem] = []
