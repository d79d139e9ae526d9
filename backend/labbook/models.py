import uuid
import sqlalchemy as sa
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    JSON,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from datetime import datetime, timezone

from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


MONEY = Numeric(12, 2, asdecimal=True)


class User(Base):
    __tablename__ = "users"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    first_name = Column(String)
    last_name = Column(String)
    phone_number = Column(String)
    # mjiit_member, utm_member, external_member, lab_administrator
    user_type = Column(String, nullable=False, default="external_member")
    academic_type = Column(String, nullable=True)  # student, staff
    # pending, active, inactive, rejected, suspended
    status = Column(String, nullable=False, default="pending")
    created_at = Column(DateTime, default=_utcnow)

    bookings = relationship(
        "BookingRequest", back_populates="user", foreign_keys="BookingRequest.user_id"
    )
    notifications = relationship(
        "Notification", back_populates="user", cascade="all, delete-orphan"
    )

    @property
    def is_admin(self) -> bool:
        return self.user_type == "lab_administrator"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Service(Base):
    __tablename__ = "services"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    description = Column(String)
    # analysis categories (ftir_atr, hplc_pda, ...) or working_space
    category = Column(String, nullable=False)
    requires_sample = Column(Boolean, default=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    pricing = relationship(
        "ServicePricing", back_populates="service", cascade="all, delete-orphan"
    )
    add_on_mappings = relationship(
        "ServiceAddOnMapping", back_populates="service", cascade="all, delete-orphan"
    )


class ServicePricing(Base):
    __tablename__ = "service_pricing"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False)
    user_type = Column(String, nullable=False)
    price = Column(MONEY, nullable=False)
    unit = Column(String, default="per sample")
    effective_from = Column(DateTime, nullable=False, default=_utcnow)
    effective_to = Column(DateTime, nullable=True)

    service = relationship("Service", back_populates="pricing")

    __table_args__ = (
        sa.Index("ix_service_pricing_lookup", "service_id", "user_type", "effective_from"),
    )


class GlobalAddOnCatalog(Base):
    __tablename__ = "global_add_on_catalog"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    description = Column(String)
    default_amount = Column(MONEY, nullable=False)
    applicable_to = Column(String, nullable=False, default="both")  # sample, workspace, both
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class ServiceAddOnMapping(Base):
    __tablename__ = "service_add_on_mappings"
    __table_args__ = (sa.UniqueConstraint("service_id", "add_on_id"),)
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False)
    add_on_id = Column(
        UUID(as_uuid=True), ForeignKey("global_add_on_catalog.id"), nullable=False
    )
    custom_amount = Column(MONEY, nullable=True)
    is_enabled = Column(Boolean, default=True, nullable=False)

    service = relationship("Service", back_populates="add_on_mappings")
    add_on = relationship("GlobalAddOnCatalog")


class BookingRequest(Base):
    __tablename__ = "booking_requests"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    reference_number = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    project_description = Column(Text)
    preferred_start_date = Column(Date)
    preferred_end_date = Column(Date)
    notes = Column(Text)
    # purpose: billing snapshot captured while drafting, required on submit
    payer_type = Column(String)
    billing_name = Column(String)
    billing_email = Column(String)
    billing_phone = Column(String)
    billing_address = Column(String)
    total_amount = Column(MONEY, nullable=False, default=0)
    status = Column(String, nullable=False, default="draft", index=True)
    review_notes = Column(Text)
    reviewed_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="bookings", foreign_keys=[user_id])
    service_items = relationship(
        "BookingServiceItem",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingServiceItem.created_at",
    )
    workspace_bookings = relationship(
        "WorkspaceBooking",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="WorkspaceBooking.start_date",
    )
    documents = relationship(
        "BookingDocument",
        back_populates="booking",
        cascade="all, delete-orphan",
        order_by="BookingDocument.created_at",
    )


class BookingServiceItem(Base):
    __tablename__ = "booking_service_items"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_id = Column(
        UUID(as_uuid=True), ForeignKey("booking_requests.id"), nullable=False, index=True
    )
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    duration_months = Column(Integer, nullable=False, default=0)
    pricing_mode = Column(String, nullable=False, default="per_count")
    unit_price = Column(MONEY, nullable=False, default=0)
    total_price = Column(MONEY, nullable=False, default=0)
    sample_name = Column(String)
    sample_type = Column(String)  # liquid, solid, powder, solution
    sample_details = Column(Text)
    sample_hazard = Column(String)
    sample_preparation = Column(Text)
    testing_method = Column(String)
    notes = Column(Text)
    temperature_controlled = Column(Boolean, default=False, nullable=False)
    light_sensitive = Column(Boolean, default=False, nullable=False)
    hazardous_material = Column(Boolean, default=False, nullable=False)
    inert_atmosphere = Column(Boolean, default=False, nullable=False)
    equipment_ids = Column(JSON, default=list)
    other_equipment_requests = Column(JSON, default=list)
    created_at = Column(DateTime, default=_utcnow)

    booking = relationship("BookingRequest", back_populates="service_items")
    service = relationship("Service")
    add_ons = relationship(
        "ServiceAddOn",
        back_populates="service_item",
        cascade="all, delete-orphan",
        foreign_keys="ServiceAddOn.service_item_id",
    )
    samples = relationship(
        "SampleTracking",
        back_populates="service_item",
        cascade="all, delete-orphan",
        order_by="SampleTracking.sample_identifier",
    )
    modifications = relationship(
        "SampleModification",
        back_populates="service_item",
        cascade="all, delete-orphan",
        order_by="SampleModification.created_at",
    )


class WorkspaceBooking(Base):
    __tablename__ = "workspace_bookings"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_id = Column(
        UUID(as_uuid=True), ForeignKey("booking_requests.id"), nullable=False, index=True
    )
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    preferred_time_slot = Column(String)
    unit_price = Column(MONEY, nullable=False, default=0)
    billed_months = Column(Integer, nullable=False, default=1)
    total_price = Column(MONEY, nullable=False, default=0)
    equipment_ids = Column(JSON, default=list)
    special_equipment = Column(JSON, default=list)
    purpose = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime, default=_utcnow)

    booking = relationship("BookingRequest", back_populates="workspace_bookings")
    add_ons = relationship(
        "ServiceAddOn",
        back_populates="workspace_booking",
        cascade="all, delete-orphan",
        foreign_keys="ServiceAddOn.workspace_booking_id",
    )


class ServiceAddOn(Base):
    __tablename__ = "service_add_ons"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_item_id = Column(
        UUID(as_uuid=True), ForeignKey("booking_service_items.id"), nullable=True
    )
    workspace_booking_id = Column(
        UUID(as_uuid=True), ForeignKey("workspace_bookings.id"), nullable=True
    )
    add_on_catalog_id = Column(
        UUID(as_uuid=True), ForeignKey("global_add_on_catalog.id"), nullable=False
    )
    name = Column(String, nullable=False)
    description = Column(String)
    amount = Column(MONEY, nullable=False)
    taxable = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=_utcnow)

    service_item = relationship(
        "BookingServiceItem", back_populates="add_ons", foreign_keys=[service_item_id]
    )
    workspace_booking = relationship(
        "WorkspaceBooking", back_populates="add_ons", foreign_keys=[workspace_booking_id]
    )


class SampleTracking(Base):
    __tablename__ = "sample_tracking"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_item_id = Column(
        UUID(as_uuid=True), ForeignKey("booking_service_items.id"), nullable=False, index=True
    )
    sample_identifier = Column(String, nullable=False)
    # pending, received, in_analysis, analysis_complete, return_requested, returned
    status = Column(String, nullable=False, default="pending")
    received_at = Column(DateTime)
    analysis_start_at = Column(DateTime)
    analysis_complete_at = Column(DateTime)
    return_requested_at = Column(DateTime)
    returned_at = Column(DateTime)
    updated_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    service_item = relationship("BookingServiceItem", back_populates="samples")


class SampleModification(Base):
    """A proposed change to an approved line item's quantity or duration."""

    __tablename__ = "sample_modifications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    service_item_id = Column(
        UUID(as_uuid=True), ForeignKey("booking_service_items.id"), nullable=False, index=True
    )
    original_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    original_duration_months = Column(Integer, nullable=False, default=0)
    new_duration_months = Column(Integer, nullable=False, default=0)
    original_total_price = Column(MONEY, nullable=False)
    new_total_price = Column(MONEY, nullable=False)
    reason = Column(Text, nullable=False)
    # pending, approved, rejected
    status = Column(String, nullable=False, default="pending", index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    decided_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    decided_at = Column(DateTime)
    decision_notes = Column(Text)
    created_at = Column(DateTime, default=_utcnow)

    service_item = relationship("BookingServiceItem", back_populates="modifications")

    @property
    def price_difference(self):
        return self.new_total_price - self.original_total_price


class BookingDocument(Base):
    __tablename__ = "booking_documents"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_id = Column(
        UUID(as_uuid=True), ForeignKey("booking_requests.id"), nullable=False, index=True
    )
    # service_form_unsigned, service_form_signed, workspace_form_unsigned,
    # workspace_form_signed, payment_receipt, invoice, sample_result
    type = Column(String, nullable=False)
    file_name = Column(String, nullable=False)
    storage_path = Column(String)
    verification_status = Column(String, nullable=False, default="pending_verification")
    note = Column(Text)
    rejection_reason = Column(Text)
    verified_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    verified_at = Column(DateTime, nullable=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=_utcnow, index=True)

    booking = relationship("BookingRequest", back_populates="documents")


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    message = Column(String, nullable=False)
    title = Column(String, nullable=True)
    category = Column(String, nullable=True)  # bookings, samples, documents, account
    priority = Column(String, default="medium")  # low, medium, high, urgent
    is_read = Column(Boolean, default=False)
    meta = Column(JSON, default=dict)  # event name, booking_id, reference_number, ...
    created_at = Column(DateTime, default=_utcnow)
    user = relationship("User", back_populates="notifications")

    @property
    def action_url(self) -> str | None:
        meta = self.meta or {}
        return meta.get("action_url")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"))
    action = Column(String, nullable=False)
    target_type = Column(String)
    target_id = Column(UUID(as_uuid=True))
    details = Column(JSON, default={})
    created_at = Column(DateTime, default=_utcnow)
