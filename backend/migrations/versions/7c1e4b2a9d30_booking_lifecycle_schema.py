"""booking_lifecycle_schema

Revision ID: 7c1e4b2a9d30
Revises:
Create Date: 2026-10-19 10:12:41.208417

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c1e4b2a9d30'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_role = sa.Enum('CLIENT', 'TECHNICIAN', 'ADMIN', name='user_role')
booking_status = sa.Enum(
    'PENDING', 'ACCEPTED', 'ON_THE_WAY', 'IN_PROGRESS', 'AWAITING_PAYMENT',
    'COMPLETED', 'DECLINED', 'CANCELLED',
    name='booking_status',
)
payment_status = sa.Enum('UNPAID', 'PENDING', 'PAID', name='payment_status')
payment_method = sa.Enum('CASH', 'CARD', 'WAFACASH', 'BANK_TRANSFER', name='payment_method')
notification_type = sa.Enum(
    'BOOKING_CREATED', 'BOOKING_ACCEPTED', 'BOOKING_DECLINED', 'BOOKING_CANCELLED',
    'BOOKING_ON_THE_WAY', 'BOOKING_IN_PROGRESS', 'BOOKING_AWAITING_PAYMENT',
    'BOOKING_STATUS_REVERTED', 'BOOKING_COMPLETED', 'QUOTE_AVAILABLE',
    'PAYMENT_SUBMITTED', 'PAYMENT_STATUS_OVERRIDDEN',
    name='notification_type',
)
delivery_status = sa.Enum('PENDING', 'SENT', 'FAILED', name='notification_delivery_status')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', user_role, nullable=False),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    op.create_table(
        'technician_profiles',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('years_of_experience', sa.Integer(), nullable=False),
        sa.Column('average_rating', sa.Numeric(precision=3, scale=2), nullable=True),
        sa.Column('review_count', sa.Integer(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id'),
    )

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('technician_id', sa.Uuid(), nullable=True),
        sa.Column('category_id', sa.Uuid(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('address', sa.String(length=500), nullable=False),
        sa.Column('city', sa.String(length=100), nullable=False),
        sa.Column('scheduled_date_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('photos', sa.JSON(), nullable=False),
        sa.Column('is_urgent', sa.Boolean(), nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('estimated_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('final_price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('payment_method', payment_method, nullable=True),
        sa.Column('receipt_url', sa.String(length=1000), nullable=True),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "(final_price IS NULL) = (status NOT IN ('AWAITING_PAYMENT', 'COMPLETED'))",
            name='booking_final_price_matches_status',
        ),
        sa.CheckConstraint(
            "payment_status <> 'PAID' OR status = 'COMPLETED'",
            name='booking_paid_implies_completed',
        ),
        sa.CheckConstraint(
            'estimated_price IS NULL OR estimated_price >= 0',
            name='booking_estimated_price_non_negative',
        ),
        sa.ForeignKeyConstraint(['client_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['technician_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_bookings_client_id', 'bookings', ['client_id'])
    op.create_index('ix_bookings_technician_id', 'bookings', ['technician_id'])
    op.create_index('ix_bookings_category_id', 'bookings', ['category_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_payment_status', 'bookings', ['payment_status'])

    op.create_table(
        'quotes',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('conditions', sa.Text(), nullable=False),
        sa.Column('equipment', sa.Text(), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('price >= 0', name='quote_price_non_negative'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id'),
    )

    op.create_table(
        'reviews',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('reviewer_id', sa.Uuid(), nullable=False),
        sa.Column('reviewee_id', sa.Uuid(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('comment', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='review_rating_range'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewer_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['reviewee_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('booking_id', 'reviewer_id', name='review_one_per_reviewer'),
    )
    op.create_index('ix_reviews_booking_id', 'reviews', ['booking_id'])
    op.create_index('ix_reviews_reviewee_id', 'reviews', ['reviewee_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('recipient_id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=True),
        sa.Column('event_type', notification_type, nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('delivery_status', delivery_status, nullable=False),
        sa.Column('correlation_id', sa.String(length=64), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_notifications_recipient_id', 'notifications', ['recipient_id'])
    op.create_index('ix_notifications_booking_id', 'notifications', ['booking_id'])
    op.create_index('ix_notifications_delivery_status', 'notifications', ['delivery_status'])

    op.create_table(
        'payment_audit_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('booking_id', sa.Uuid(), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=False),
        sa.Column('old_payment_status', sa.String(length=20), nullable=False),
        sa.Column('new_payment_status', sa.String(length=20), nullable=False),
        sa.Column('old_status', sa.String(length=20), nullable=False),
        sa.Column('new_status', sa.String(length=20), nullable=False),
        sa.Column('reason', sa.String(length=1000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payment_audit_logs_booking_id', 'payment_audit_logs', ['booking_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_payment_audit_logs_booking_id', table_name='payment_audit_logs')
    op.drop_table('payment_audit_logs')
    op.drop_index('ix_notifications_delivery_status', table_name='notifications')
    op.drop_index('ix_notifications_booking_id', table_name='notifications')
    op.drop_index('ix_notifications_recipient_id', table_name='notifications')
    op.drop_table('notifications')
    op.drop_index('ix_reviews_reviewee_id', table_name='reviews')
    op.drop_index('ix_reviews_booking_id', table_name='reviews')
    op.drop_table('reviews')
    op.drop_table('quotes')
    op.drop_index('ix_bookings_payment_status', table_name='bookings')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_category_id', table_name='bookings')
    op.drop_index('ix_bookings_technician_id', table_name='bookings')
    op.drop_index('ix_bookings_client_id', table_name='bookings')
    op.drop_table('bookings')
    op.drop_table('technician_profiles')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        delivery_status,
        notification_type,
        payment_method,
        payment_status,
        booking_status,
        user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
