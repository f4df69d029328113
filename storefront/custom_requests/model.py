import enum
import math
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..common.db import Base, isoformat, utcnow


class RequestStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    REVIEWING = "reviewing"
    QUOTED = "quoted"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


SENDER_CUSTOMER = "customer"
SENDER_ADMIN = "admin"


class CustomRequest(Base):
    __tablename__ = "custom_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True, index=True)
    # Empty for requests submitted without an account
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    contact_info: Mapped[dict] = mapped_column(JSON, nullable=False)
    dress_details: Mapped[dict] = mapped_column(JSON, nullable=False)
    measurements: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    budget: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    timeline: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    preferred_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=RequestStatus.SUBMITTED.value, index=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default=Priority.MEDIUM.value, index=True)
    admin_response: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    communications: Mapped[List["Communication"]] = relationship(
        back_populates="request",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="Communication.id",
    )

    def days_since_submission(self, now: Optional[datetime] = None) -> int:
        elapsed = (now or utcnow()) - self.created_at
        return math.ceil(abs(elapsed.total_seconds()) / 86400)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.preferred_date is None:
            return False
        return (now or utcnow()) > self.preferred_date and self.status != RequestStatus.COMPLETED.value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requestNumber": self.request_number,
            "user": self.user_id,
            "contactInfo": self.contact_info,
            "dressDetails": self.dress_details,
            "measurements": self.measurements,
            "budget": self.budget,
            "timeline": {**self.timeline, "preferredDate": isoformat(self.preferred_date)},
            "status": self.status,
            "priority": self.priority,
            "adminResponse": self.admin_response,
            "communications": [c.to_dict() for c in self.communications],
            "tags": self.tags,
            "daysSinceSubmission": self.days_since_submission(),
            "isOverdue": self.is_overdue(),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


class Communication(Base):
    __tablename__ = "custom_request_communications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(ForeignKey("custom_requests.id"), nullable=False, index=True)
    sender: Mapped[str] = mapped_column(String(16), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    request: Mapped["CustomRequest"] = relationship(back_populates="communications")

    def to_dict(self) -> dict:
        return {"from": self.sender, "message": self.message, "timestamp": isoformat(self.created_at)}
