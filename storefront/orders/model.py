import enum
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..common.db import Base, isoformat, utcnow


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


# Statuses from which an owner can no longer cancel
NON_CANCELLABLE = frozenset({OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value})


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=OrderStatus.PENDING.value, index=True)

    shipping_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    billing_address: Mapped[dict] = mapped_column(JSON, nullable=False)
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False)

    # Pricing snapshot; tax keeps three decimals (10% of a cent-precise subtotal)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    tax: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    shipping: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "user": self.user_id,
            "status": self.status,
            "items": [i.to_dict() for i in self.items],
            "shippingAddress": self.shipping_address,
            "billingAddress": self.billing_address,
            "paymentInfo": {"method": self.payment_method},
            "pricing": {
                "subtotal": float(self.subtotal),
                "tax": float(self.tax),
                "shipping": float(self.shipping),
                "total": float(self.total),
            },
            "notes": self.notes,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class OrderItem(Base):
    """An ordered line; ``price`` is captured at order time and never re-read."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id"), nullable=False, index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"), nullable=False)
    product_name: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    size: Mapped[str] = mapped_column(String(8), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")

    def to_dict(self) -> dict:
        return {
            "product": self.product_id,
            "name": self.product_name,
            "quantity": self.quantity,
            "size": self.size,
            "color": self.color,
            "price": float(self.price),
        }
