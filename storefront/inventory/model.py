import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Float, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..common.db import Base, isoformat, utcnow


class Size(str, enum.Enum):
    XS = "XS"
    S = "S"
    M = "M"
    L = "L"
    XL = "XL"
    XXL = "XXL"


class Category(str, enum.Enum):
    CASUAL = "casual"
    FORMAL = "formal"
    EVENING = "evening"
    WEDDING = "wedding"
    CUSTOM = "custom"
    ACCESSORIES = "accessories"


SIZE_ORDER = [s.value for s in Size]


class Product(Base):
    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    slug: Mapped[str] = mapped_column(String(160), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    colors: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    rating_average: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rating_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    sizes: Mapped[List["ProductSize"]] = relationship(
        back_populates="product",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ProductSize.id",
    )
    reviews: Mapped[List["ProductReview"]] = relationship(
        back_populates="product",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="ProductReview.id",
    )

    @property
    def total_stock(self) -> int:
        return sum(s.stock for s in self.sizes)

    def to_dict(self, with_reviews: bool = False) -> dict:
        body = {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "price": float(self.price),
            "category": self.category,
            "images": self.images,
            "colors": self.colors,
            "tags": self.tags,
            "featured": self.featured,
            "isActive": self.is_active,
            "sizes": [s.to_dict() for s in self.sizes],
            "totalStock": self.total_stock,
            "rating": {"average": self.rating_average, "count": self.rating_count},
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
        if with_reviews:
            body["reviews"] = [r.to_dict() for r in self.reviews]
        return body


class ProductSize(Base):
    """A per-size stock counter; the only mutable inventory state."""

    __tablename__ = "product_sizes"
    __table_args__ = (
        UniqueConstraint("product_id", "size", name="uq_product_size"),
        CheckConstraint("stock >= 0", name="ck_product_size_stock_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    size: Mapped[str] = mapped_column(String(8), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    product: Mapped["Product"] = relationship(back_populates="sizes")

    def to_dict(self) -> dict:
        return {"size": self.size, "stock": self.stock}


class ProductReview(Base):
    """One rating per customer per product."""

    __tablename__ = "product_reviews"
    __table_args__ = (UniqueConstraint("product_id", "user_id", name="uq_product_review_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    # Reviewer name as it was when the review was written
    user_name: Mapped[str] = mapped_column(String(50), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    product: Mapped["Product"] = relationship(back_populates="reviews")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user": {"id": self.user_id, "name": self.user_name},
            "rating": self.rating,
            "comment": self.comment,
            "createdAt": isoformat(self.created_at),
        }
