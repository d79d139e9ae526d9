"""booking engine tables"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261018_01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)


def _id() -> sa.Column:
    return sa.Column('id', sa.UUID(as_uuid=True), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade() -> None:
    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(), nullable=False, unique=True),
        sa.Column('first_name', sa.String()),
        sa.Column('last_name', sa.String()),
        sa.Column('phone_number', sa.String()),
        sa.Column('user_type', sa.String(), nullable=False, server_default='external_member'),
        sa.Column('academic_type', sa.String()),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        _created_at(),
    )
    op.create_table(
        'services',
        _id(),
        sa.Column('code', sa.String(), nullable=False, unique=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String()),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('requires_sample', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_table(
        'service_pricing',
        _id(),
        sa.Column('service_id', sa.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('user_type', sa.String(), nullable=False),
        sa.Column('price', MONEY, nullable=False),
        sa.Column('unit', sa.String(), server_default='per sample'),
        sa.Column('effective_from', sa.DateTime(), nullable=False),
        sa.Column('effective_to', sa.DateTime()),
    )
    op.create_index(
        'ix_service_pricing_lookup',
        'service_pricing',
        ['service_id', 'user_type', 'effective_from'],
    )
    op.create_table(
        'global_add_on_catalog',
        _id(),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String()),
        sa.Column('default_amount', MONEY, nullable=False),
        sa.Column('applicable_to', sa.String(), nullable=False, server_default='both'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_table(
        'service_add_on_mappings',
        _id(),
        sa.Column('service_id', sa.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('add_on_id', sa.UUID(as_uuid=True), sa.ForeignKey('global_add_on_catalog.id'), nullable=False),
        sa.Column('custom_amount', MONEY),
        sa.Column('is_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('service_id', 'add_on_id'),
    )
    op.create_table(
        'booking_requests',
        _id(),
        sa.Column('reference_number', sa.String(), nullable=False, unique=True),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('project_description', sa.Text()),
        sa.Column('preferred_start_date', sa.Date()),
        sa.Column('preferred_end_date', sa.Date()),
        sa.Column('notes', sa.Text()),
        sa.Column('payer_type', sa.String()),
        sa.Column('billing_name', sa.String()),
        sa.Column('billing_email', sa.String()),
        sa.Column('billing_phone', sa.String()),
        sa.Column('billing_address', sa.String()),
        sa.Column('total_amount', MONEY, nullable=False, server_default='0'),
        sa.Column('status', sa.String(), nullable=False, server_default='draft'),
        sa.Column('review_notes', sa.Text()),
        sa.Column('reviewed_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('reviewed_at', sa.DateTime()),
        sa.Column('released_at', sa.DateTime()),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_booking_requests_reference_number', 'booking_requests', ['reference_number'])
    op.create_index('ix_booking_requests_user_id', 'booking_requests', ['user_id'])
    op.create_index('ix_booking_requests_status', 'booking_requests', ['status'])
    op.create_table(
        'booking_service_items',
        _id(),
        sa.Column('booking_id', sa.UUID(as_uuid=True), sa.ForeignKey('booking_requests.id'), nullable=False),
        sa.Column('service_id', sa.UUID(as_uuid=True), sa.ForeignKey('services.id'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('duration_months', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pricing_mode', sa.String(), nullable=False, server_default='per_count'),
        sa.Column('unit_price', MONEY, nullable=False, server_default='0'),
        sa.Column('total_price', MONEY, nullable=False, server_default='0'),
        sa.Column('sample_name', sa.String()),
        sa.Column('sample_type', sa.String()),
        sa.Column('sample_details', sa.Text()),
        sa.Column('sample_hazard', sa.String()),
        sa.Column('sample_preparation', sa.Text()),
        sa.Column('testing_method', sa.String()),
        sa.Column('notes', sa.Text()),
        sa.Column('temperature_controlled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('light_sensitive', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('hazardous_material', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('inert_atmosphere', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('equipment_ids', sa.JSON()),
        sa.Column('other_equipment_requests', sa.JSON()),
        _created_at(),
    )
    op.create_index('ix_booking_service_items_booking_id', 'booking_service_items', ['booking_id'])
    op.create_table(
        'workspace_bookings',
        _id(),
        sa.Column('booking_id', sa.UUID(as_uuid=True), sa.ForeignKey('booking_requests.id'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('preferred_time_slot', sa.String()),
        sa.Column('unit_price', MONEY, nullable=False, server_default='0'),
        sa.Column('billed_months', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('total_price', MONEY, nullable=False, server_default='0'),
        sa.Column('equipment_ids', sa.JSON()),
        sa.Column('special_equipment', sa.JSON()),
        sa.Column('purpose', sa.Text()),
        sa.Column('notes', sa.Text()),
        _created_at(),
    )
    op.create_index('ix_workspace_bookings_booking_id', 'workspace_bookings', ['booking_id'])
    op.create_table(
        'service_add_ons',
        _id(),
        sa.Column('service_item_id', sa.UUID(as_uuid=True), sa.ForeignKey('booking_service_items.id')),
        sa.Column('workspace_booking_id', sa.UUID(as_uuid=True), sa.ForeignKey('workspace_bookings.id')),
        sa.Column('add_on_catalog_id', sa.UUID(as_uuid=True), sa.ForeignKey('global_add_on_catalog.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.String()),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('taxable', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_table(
        'sample_tracking',
        _id(),
        sa.Column('service_item_id', sa.UUID(as_uuid=True), sa.ForeignKey('booking_service_items.id'), nullable=False),
        sa.Column('sample_identifier', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('received_at', sa.DateTime()),
        sa.Column('analysis_start_at', sa.DateTime()),
        sa.Column('analysis_complete_at', sa.DateTime()),
        sa.Column('return_requested_at', sa.DateTime()),
        sa.Column('returned_at', sa.DateTime()),
        sa.Column('updated_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_sample_tracking_service_item_id', 'sample_tracking', ['service_item_id'])
    op.create_table(
        'booking_documents',
        _id(),
        sa.Column('booking_id', sa.UUID(as_uuid=True), sa.ForeignKey('booking_requests.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('file_name', sa.String(), nullable=False),
        sa.Column('storage_path', sa.String()),
        sa.Column('verification_status', sa.String(), nullable=False, server_default='pending_verification'),
        sa.Column('note', sa.Text()),
        sa.Column('rejection_reason', sa.Text()),
        sa.Column('verified_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('verified_at', sa.DateTime()),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        _created_at(),
    )
    op.create_index('ix_booking_documents_booking_id', 'booking_documents', ['booking_id'])
    op.create_index('ix_booking_documents_created_at', 'booking_documents', ['created_at'])
    op.create_table(
        'notifications',
        _id(),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('title', sa.String()),
        sa.Column('category', sa.String()),
        sa.Column('priority', sa.String(), server_default='medium'),
        sa.Column('is_read', sa.Boolean(), server_default=sa.false()),
        sa.Column('meta', sa.JSON()),
        _created_at(),
    )
    op.create_table(
        'audit_logs',
        _id(),
        sa.Column('user_id', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('action', sa.String(), nullable=False),
        sa.Column('target_type', sa.String()),
        sa.Column('target_id', sa.UUID(as_uuid=True)),
        sa.Column('details', sa.JSON()),
        _created_at(),
    )


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('notifications')
    op.drop_index('ix_booking_documents_created_at', table_name='booking_documents')
    op.drop_index('ix_booking_documents_booking_id', table_name='booking_documents')
    op.drop_table('booking_documents')
    op.drop_index('ix_sample_tracking_service_item_id', table_name='sample_tracking')
    op.drop_table('sample_tracking')
    op.drop_table('service_add_ons')
    op.drop_index('ix_workspace_bookings_booking_id', table_name='workspace_bookings')
    op.drop_table('workspace_bookings')
    op.drop_index('ix_booking_service_items_booking_id', table_name='booking_service_items')
    op.drop_table('booking_service_items')
    op.drop_index('ix_booking_requests_status', table_name='booking_requests')
    op.drop_index('ix_booking_requests_user_id', table_name='booking_requests')
    op.drop_index('ix_booking_requests_reference_number', table_name='booking_requests')
    op.drop_table('booking_requests')
    op.drop_table('service_add_on_mappings')
    op.drop_table('global_add_on_catalog')
    op.drop_index('ix_service_pricing_lookup', table_name='service_pricing')
    op.drop_table('service_pricing')
    op.drop_table('services')
    op.drop_table('users')
