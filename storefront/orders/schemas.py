from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from ..inventory.model import Size
from .model import OrderStatus

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]

PaymentMethod = Literal["credit_card", "debit_card", "paypal", "bank_transfer", "cash_on_delivery"]


class OrderLine(BaseModel):
    product: int = Field(..., ge=1)
    quantity: int = Field(..., ge=1)
    size: Size
    color: Optional[str] = None


class Address(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: NonBlank
    street: NonBlank
    city: NonBlank
    state: NonBlank
    zipCode: NonBlank
    country: NonBlank


class PaymentInfo(BaseModel):
    method: PaymentMethod


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    items: List[OrderLine] = Field(..., min_length=1)
    shippingAddress: Address
    billingAddress: Optional[Address] = None
    paymentInfo: PaymentInfo
    notes: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None


class StatusUpdateRequest(BaseModel):
    status: OrderStatus
    note: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=500)]] = None


class OrderQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)
    status: Optional[OrderStatus] = None


class AdminOrderQuery(OrderQuery):
    limit: int = Field(20, ge=1, le=100)
    search: Optional[str] = None
