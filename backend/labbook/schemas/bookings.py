"""Schemas for booking drafts, lifecycle actions and read models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

PayerType = Literal["external", "staff", "student-self", "student-supervisor"]
SampleType = Literal["liquid", "solid", "powder", "solution"]
SampleStatus = Literal[
    "pending",
    "received",
    "in_analysis",
    "analysis_complete",
    "return_requested",
    "returned",
]
DocumentType = Literal[
    "service_form_unsigned",
    "service_form_signed",
    "workspace_form_unsigned",
    "workspace_form_signed",
    "payment_receipt",
    "invoice",
    "sample_result",
]


class ServiceItemDraft(BaseModel):
    id: UUID | None = None
    service_id: UUID
    quantity: int = Field(default=1, ge=0)
    duration_months: int = Field(default=0, ge=0)
    sample_name: str | None = Field(default=None, max_length=200)
    sample_type: SampleType | None = None
    sample_details: str | None = None
    sample_hazard: str | None = Field(default=None, max_length=100)
    sample_preparation: str | None = None
    testing_method: str | None = Field(default=None, max_length=200)
    notes: str | None = None
    temperature_controlled: bool = False
    light_sensitive: bool = False
    hazardous_material: bool = False
    inert_atmosphere: bool = False
    equipment_ids: list[UUID] = Field(default_factory=list)
    other_equipment_requests: list[str] = Field(default_factory=list)
    add_on_catalog_ids: list[UUID] = Field(default_factory=list)


class WorkspaceBookingDraft(BaseModel):
    id: UUID | None = None
    start_date: date
    end_date: date
    preferred_time_slot: str | None = Field(default=None, max_length=50)
    equipment_ids: list[UUID] = Field(default_factory=list)
    special_equipment: list[str] = Field(default_factory=list)
    purpose: str | None = None
    notes: str | None = None
    add_on_catalog_ids: list[UUID] = Field(default_factory=list)


class BookingDraftUpdate(BaseModel):
    """Lenient draft payload; omitted collections leave stored items untouched."""

    project_description: str | None = None
    preferred_start_date: date | None = None
    preferred_end_date: date | None = None
    notes: str | None = None
    payer_type: PayerType | None = None
    billing_name: str | None = Field(default=None, max_length=200)
    billing_email: str | None = None
    billing_phone: str | None = Field(default=None, max_length=30)
    billing_address: str | None = Field(default=None, max_length=300)
    service_items: list[ServiceItemDraft] | None = None
    workspace_bookings: list[WorkspaceBookingDraft] | None = None


class SubmittedServiceItem(BaseModel):
    service_id: UUID
    # count-billed items need at least one; checked against the pricing mode
    quantity: int = Field(ge=0)
    duration_months: int = Field(ge=0)
    sample_name: str | None = Field(default=None, max_length=200)
    sample_type: SampleType | None = None


class SubmittedWorkspaceBooking(BaseModel):
    start_date: date
    end_date: date


class BookingSubmission(BaseModel):
    """Strict shape a booking must satisfy before it leaves draft."""

    project_description: str = Field(min_length=1)
    preferred_start_date: date | None = None
    preferred_end_date: date | None = None
    payer_type: PayerType
    billing_name: str = Field(min_length=1, max_length=200)
    billing_email: EmailStr
    billing_phone: str | None = Field(default=None, max_length=30)
    service_items: list[SubmittedServiceItem] = Field(default_factory=list)
    workspace_bookings: list[SubmittedWorkspaceBooking] = Field(default_factory=list)


class ReviewNote(BaseModel):
    note: str = ""


class CancelRequest(BaseModel):
    reason: str | None = None


class ForceCompleteRequest(BaseModel):
    reason: str = ""


class ResolvedAddOnOut(BaseModel):
    id: UUID
    add_on_catalog_id: UUID
    name: str
    amount: Decimal
    description: str | None = None
    model_config = ConfigDict(from_attributes=True)


class SampleOut(BaseModel):
    id: UUID
    service_item_id: UUID
    sample_identifier: str
    status: SampleStatus
    received_at: datetime | None = None
    analysis_start_at: datetime | None = None
    analysis_complete_at: datetime | None = None
    return_requested_at: datetime | None = None
    returned_at: datetime | None = None
    updated_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


class ServiceItemOut(BaseModel):
    id: UUID
    service_id: UUID
    quantity: int
    duration_months: int
    pricing_mode: str
    unit_price: Decimal
    total_price: Decimal
    sample_name: str | None = None
    sample_type: str | None = None
    sample_details: str | None = None
    sample_hazard: str | None = None
    sample_preparation: str | None = None
    testing_method: str | None = None
    notes: str | None = None
    temperature_controlled: bool = False
    light_sensitive: bool = False
    hazardous_material: bool = False
    inert_atmosphere: bool = False
    equipment_ids: list[UUID] = Field(default_factory=list)
    other_equipment_requests: list[str] = Field(default_factory=list)
    add_ons: list[ResolvedAddOnOut] = Field(default_factory=list)
    samples: list[SampleOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class WorkspaceBookingOut(BaseModel):
    id: UUID
    start_date: date
    end_date: date
    preferred_time_slot: str | None = None
    unit_price: Decimal
    billed_months: int
    total_price: Decimal
    equipment_ids: list[UUID] = Field(default_factory=list)
    special_equipment: list[str] = Field(default_factory=list)
    purpose: str | None = None
    notes: str | None = None
    add_ons: list[ResolvedAddOnOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class BookingOut(BaseModel):
    id: UUID
    reference_number: str
    user_id: UUID
    status: str
    project_description: str | None = None
    preferred_start_date: date | None = None
    preferred_end_date: date | None = None
    notes: str | None = None
    payer_type: str | None = None
    billing_name: str | None = None
    billing_email: str | None = None
    billing_phone: str | None = None
    billing_address: str | None = None
    total_amount: Decimal
    review_notes: str | None = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    released_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
    service_items: list[ServiceItemOut] = Field(default_factory=list)
    workspace_bookings: list[WorkspaceBookingOut] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class BookingSummaryOut(BaseModel):
    id: UUID
    reference_number: str
    status: str
    total_amount: Decimal
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class BookingCreatedOut(BaseModel):
    booking_id: UUID
    reference_number: str


class BookingStatusOut(BaseModel):
    booking_id: UUID
    status: str


class UserVerifiedOut(BaseModel):
    user_id: UUID
    promoted_booking_ids: list[UUID] = Field(default_factory=list)


class SampleStatusUpdate(BaseModel):
    status: SampleStatus


class SampleStatusOut(BaseModel):
    sample: SampleOut
    booking_id: UUID
    booking_status: str
    booking_completed: bool = False


class SampleListItem(BaseModel):
    id: UUID
    sample_identifier: str
    status: SampleStatus
    booking_id: UUID
    reference_number: str
    service_name: str
    customer_name: str | None = None
    updated_at: datetime | None = None


class DocumentCreate(BaseModel):
    type: DocumentType
    file_name: str = Field(min_length=1)
    storage_path: str | None = None
    note: str | None = None


class DocumentRejectRequest(BaseModel):
    reason: str = ""


class DocumentVerifyRequest(BaseModel):
    note: str | None = None


class DocumentOut(BaseModel):
    id: UUID
    booking_id: UUID
    type: DocumentType
    file_name: str
    verification_status: str
    note: str | None = None
    rejection_reason: str | None = None
    verified_by: UUID | None = None
    verified_at: datetime | None = None
    created_by: UUID | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class DocumentVerificationStateOut(BaseModel):
    service_form_signed: str
    workspace_form_signed: str
    payment_receipt: str
    requires_workspace_form: bool


class DownloadEligibilityOut(BaseModel):
    is_eligible: bool
    service_form_verified: bool
    workspace_form_verified: bool
    payment_verified: bool
    requires_workspace_form: bool
    completed_sample_count: int
    message: str


ModificationStatus = Literal["pending", "approved", "rejected"]


class ModificationCreate(BaseModel):
    service_item_id: UUID
    new_quantity: int | None = Field(default=None, ge=1)
    new_duration_months: int | None = Field(default=None, ge=1)
    reason: str = Field(min_length=10)


class ModificationDecision(BaseModel):
    approved: bool
    notes: str | None = None


class ModificationOut(BaseModel):
    id: UUID
    service_item_id: UUID
    original_quantity: int
    new_quantity: int
    original_duration_months: int
    new_duration_months: int
    original_total_price: Decimal
    new_total_price: Decimal
    price_difference: Decimal
    reason: str
    status: ModificationStatus
    created_by: UUID
    decided_by: UUID | None = None
    decided_at: datetime | None = None
    decision_notes: str | None = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)
