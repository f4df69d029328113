from datetime import datetime
from typing import Annotated, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, model_validator

from .model import Priority, RequestStatus

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class ContactInfo(BaseModel):
    name: NonBlank
    email: EmailStr
    phone: NonBlank


class DressDetails(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["wedding", "evening", "casual", "formal", "party", "other"]
    description: Annotated[str, StringConstraints(strip_whitespace=True, min_length=10, max_length=1000)]
    occasion: Optional[str] = None
    preferredStyle: Optional[str] = None
    colors: List[str] = []
    materials: List[str] = []
    specialRequirements: Optional[str] = None


class Budget(BaseModel):
    min: Optional[float] = Field(None, ge=0)
    max: Optional[float] = Field(None, ge=0)
    currency: str = "USD"

    @model_validator(mode="after")
    def _ordered(self) -> "Budget":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError("Budget min cannot exceed max")
        return self


class Timeline(BaseModel):
    preferredDate: Optional[datetime] = None
    isFlexible: bool = True
    urgency: Literal["low", "medium", "high", "urgent"] = "medium"


class CreateCustomRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    contactInfo: ContactInfo
    dressDetails: DressDetails
    measurements: Dict[str, float] = {}
    budget: Budget = Budget()
    timeline: Timeline = Timeline()
    tags: List[str] = []


class CommunicationRequest(BaseModel):
    message: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=1000)]


class Quote(BaseModel):
    amount: float = Field(..., ge=0)
    currency: str = "USD"
    breakdown: List[dict] = []


class AdminResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    quote: Optional[Quote] = None
    estimatedCompletion: Optional[datetime] = None
    notes: Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=1000)]] = None


class StatusUpdateRequest(BaseModel):
    status: RequestStatus
    adminResponse: Optional[AdminResponse] = None
    priority: Optional[Priority] = None


class RequestQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)
    status: Optional[RequestStatus] = None


class AdminRequestQuery(RequestQuery):
    limit: int = Field(20, ge=1, le=100)
    priority: Optional[Priority] = None
