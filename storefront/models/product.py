import re
from decimal import Decimal
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, field_validator
from .base import Money
from ..utils.formatters import safe_int, safe_number

_GENDER = re.compile(r"\b(men|mens|man|mans|women|womens|woman|female|male)\b", re.IGNORECASE)
_CLOTHING = re.compile(r"\b(cloth|clothing|apparel|fashion|wear)\b", re.IGNORECASE)

class Product(BaseModel):
    """Catalog row as read at checkout time"""
    id: str
    name: str = "Product"
    slug: Optional[str] = None
    sku: Optional[str] = None
    price: Money = Decimal(0)
    stock_quantity: int = 0
    category_name: Optional[str] = None
    category_slug: Optional[str] = None
    size_chart: Optional[List[Any]] = None
    is_active: bool = True
    color_group_id: Optional[str] = None
    color_name: Optional[str] = None
    color_hex: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("id", "color_group_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value)

    @field_validator("price", mode="before")
    @classmethod
    def _coerce_price(cls, value: Any) -> Decimal:
        return safe_number(value)

    @field_validator("stock_quantity", mode="before")
    @classmethod
    def _coerce_stock(cls, value: Any) -> int:
        return safe_int(value)

    @property
    def is_clothing(self) -> bool:
        hay = f"{self.category_name or ''} {self.category_slug or ''}"
        return bool(_GENDER.search(hay) and _CLOTHING.search(hay))

    @property
    def requires_size(self) -> bool:
        return bool(self.size_chart) or self.is_clothing

    @property
    def is_base_variant(self) -> bool:
        return not (self.color_name or "").strip()

class ColorVariant(BaseModel):
    """One extra color in a variant group; blank stock falls back to the base row"""
    color_name: str
    color_hex: Optional[str] = None
    stock_quantity: Optional[Any] = None

    @field_validator("color_name", "color_hex", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Optional[str]:
        return None if value is None else str(value).strip()

    def resolved_stock(self, base_stock: int) -> int:
        if self.stock_quantity is None or str(self.stock_quantity).strip() == "":
            return base_stock
        return safe_int(self.stock_quantity)

class ProductSpec(BaseModel):
    label: str
    value: str

class ProductCreateRequest(BaseModel):
    name: str
    slug: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    price: Decimal
    stock_quantity: int = 0
    category_id: Optional[str] = None
    size_chart: Optional[List[Any]] = None
    images: List[str] = []
    variants: List[ColorVariant] = []
    specs: List[ProductSpec] = []
