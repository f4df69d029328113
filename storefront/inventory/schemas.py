from decimal import Decimal
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from .model import Category, Size

Text100 = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=100)]
Text1000 = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]


class SizeEntry(BaseModel):
    size: Size
    stock: int = Field(0, ge=0)


class Color(BaseModel):
    name: str
    hexCode: Optional[str] = None


class ProductCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Text100
    description: Text1000
    price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)
    category: Category
    sizes: List[SizeEntry] = Field(..., min_length=1)
    images: List[str] = Field(..., min_length=1)
    colors: List[Color] = []
    tags: List[str] = []
    featured: bool = False
    slug: Optional[str] = None

    @field_validator("sizes")
    @classmethod
    def _unique_sizes(cls, sizes: List[SizeEntry]) -> List[SizeEntry]:
        seen = [s.size for s in sizes]
        if len(seen) != len(set(seen)):
            raise ValueError("Each size may appear only once")
        return sizes


class ProductUpdate(BaseModel):
    """Editable catalog fields. Stock is not editable here; only orders move it."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[Text100] = None
    description: Optional[Text1000] = None
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)
    category: Optional[Category] = None
    images: Optional[List[str]] = None
    colors: Optional[List[Color]] = None
    tags: Optional[List[str]] = None
    featured: Optional[bool] = None


class ProductQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(12, ge=1, le=50)
    category: Optional[Category] = None
    minPrice: Optional[float] = Field(None, ge=0)
    maxPrice: Optional[float] = Field(None, ge=0)
    search: Optional[str] = None
    featured: Optional[bool] = None
    sort: Literal["price_asc", "price_desc", "name_asc", "name_desc", "newest", "rating"] = "newest"


class ReviewCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None
