"""sample modification requests"""

from alembic import op
import sqlalchemy as sa
from typing import Sequence, Union

revision: str = '20261018_02'
down_revision: Union[str, Sequence[str], None] = '20261018_01'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(12, 2)


def upgrade() -> None:
    op.create_table(
        'sample_modifications',
        sa.Column('id', sa.UUID(as_uuid=True), primary_key=True),
        sa.Column('service_item_id', sa.UUID(as_uuid=True), sa.ForeignKey('booking_service_items.id'), nullable=False),
        sa.Column('original_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('original_duration_months', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('new_duration_months', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('original_total_price', MONEY, nullable=False),
        sa.Column('new_total_price', MONEY, nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='pending'),
        sa.Column('created_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('decided_by', sa.UUID(as_uuid=True), sa.ForeignKey('users.id')),
        sa.Column('decided_at', sa.DateTime()),
        sa.Column('decision_notes', sa.Text()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index(
        'ix_sample_modifications_service_item_id', 'sample_modifications', ['service_item_id']
    )
    op.create_index('ix_sample_modifications_status', 'sample_modifications', ['status'])


def downgrade() -> None:
    op.drop_index('ix_sample_modifications_status', table_name='sample_modifications')
    op.drop_index('ix_sample_modifications_service_item_id', table_name='sample_modifications')
    op.drop_table('sample_modifications')
