"""Pydantic schemas consolidating backend API contracts."""

# purpose: aggregate request and response schemas for FastAPI surfaces and services
# status: active
# related_docs: DESIGN.md

from datetime import datetime
from decimal import Decimal
from typing import Optional, Any, Dict, List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from .bookings import (
    BookingCreatedOut,
    BookingDraftUpdate,
    BookingOut,
    BookingStatusOut,
    BookingSubmission,
    BookingSummaryOut,
    CancelRequest,
    DocumentCreate,
    DocumentOut,
    DocumentRejectRequest,
    DocumentType,
    DocumentVerificationStateOut,
    DocumentVerifyRequest,
    DownloadEligibilityOut,
    ForceCompleteRequest,
    ModificationCreate,
    ModificationDecision,
    ModificationOut,
    ModificationStatus,
    PayerType,
    ResolvedAddOnOut,
    ReviewNote,
    SampleListItem,
    SampleOut,
    SampleStatus,
    SampleStatusOut,
    SampleStatusUpdate,
    SampleType,
    ServiceItemDraft,
    ServiceItemOut,
    SubmittedServiceItem,
    SubmittedWorkspaceBooking,
    UserVerifiedOut,
    WorkspaceBookingDraft,
    WorkspaceBookingOut,
)


class UserOut(BaseModel):
    id: UUID
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    user_type: str
    academic_type: Optional[str] = None
    status: str
    is_admin: bool = False
    model_config = ConfigDict(from_attributes=True)


class ServicePriceOut(BaseModel):
    user_type: str
    price: Decimal
    unit: Optional[str] = None
    effective_from: datetime
    effective_to: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class AddOnOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    default_amount: Decimal
    applicable_to: str
    model_config = ConfigDict(from_attributes=True)


class ServiceOut(BaseModel):
    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    category: str
    requires_sample: bool
    # price in effect for the caller's user type, when one exists
    effective_price: Optional[Decimal] = None
    model_config = ConfigDict(from_attributes=True)


class ServiceDetailOut(ServiceOut):
    prices: List[ServicePriceOut] = Field(default_factory=list)


class ServiceAddOnOut(BaseModel):
    add_on_id: UUID
    name: str
    amount: Decimal


class NotificationOut(BaseModel):
    id: UUID
    user_id: UUID
    message: str
    title: Optional[str] = None
    category: Optional[str] = None
    priority: str = "medium"
    is_read: bool
    meta: Dict[str, Any] = Field(default_factory=dict)
    action_url: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AuditLogOut(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    action: str
    target_type: Optional[str] = None
    target_id: Optional[UUID] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


__all__ = [
    "AddOnOut",
    "AuditLogOut",
    "BookingCreatedOut",
    "BookingDraftUpdate",
    "BookingOut",
    "BookingStatusOut",
    "BookingSubmission",
    "BookingSummaryOut",
    "CancelRequest",
    "DocumentCreate",
    "DocumentOut",
    "DocumentRejectRequest",
    "DocumentType",
    "DocumentVerificationStateOut",
    "DocumentVerifyRequest",
    "DownloadEligibilityOut",
    "ForceCompleteRequest",
    "ModificationCreate",
    "ModificationDecision",
    "ModificationOut",
    "ModificationStatus",
    "NotificationOut",
    "PayerType",
    "ResolvedAddOnOut",
    "ReviewNote",
    "SampleListItem",
    "SampleOut",
    "SampleStatus",
    "SampleStatusOut",
    "SampleStatusUpdate",
    "SampleType",
    "ServiceAddOnOut",
    "ServiceItemDraft",
    "ServiceItemOut",
    "ServiceOut",
    "ServiceDetailOut",
    "ServicePriceOut",
    "SubmittedServiceItem",
    "SubmittedWorkspaceBooking",
    "UserOut",
    "UserVerifiedOut",
    "WorkspaceBookingDraft",
    "WorkspaceBookingOut",
]
