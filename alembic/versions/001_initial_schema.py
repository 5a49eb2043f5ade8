"""Initial schema

Revision ID: 001
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = '001'
down_revision = None
branch_labels = None
depends_on = None

tracking_status = sa.Enum('ACTIVE', 'CANCELLED', 'EXPIRED', name='trackingstatus')
subscription_tier = sa.Enum('FREE', 'PREMIUM', name='subscriptiontier')


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('username', sa.String(100)),
        sa.Column('subscription_tier', subscription_tier, nullable=False, server_default='FREE'),
        sa.Column('subscription_expiry', sa.DateTime()),
        sa.Column('subscription_updated_at', sa.DateTime()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('last_active', sa.DateTime()),
    )

    op.create_table(
        'price_alerts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('origin', sa.String(3), nullable=False),
        sa.Column('destination', sa.String(3), nullable=False),
        sa.Column('departure_date', sa.Date(), nullable=False),
        sa.Column('return_date', sa.Date()),
        sa.Column('target_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('current_price', sa.Numeric(10, 2)),
        sa.Column('lowest_price', sa.Numeric(10, 2)),
        sa.Column('booking_url', sa.String(500)),
        sa.Column('status', tracking_status, nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('last_checked', sa.DateTime()),
        sa.Column('cancelled_at', sa.DateTime()),
    )
    op.create_index('ix_price_alerts_user_id', 'price_alerts', ['user_id'])
    op.create_index('ix_price_alerts_departure_date', 'price_alerts', ['departure_date'])
    op.create_index('ix_price_alerts_status', 'price_alerts', ['status'])
    op.create_index('ix_price_alerts_last_checked', 'price_alerts', ['last_checked'])

    op.create_table(
        'price_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('alert_id', sa.Integer(), sa.ForeignKey('price_alerts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('airline', sa.String(100)),
        sa.Column('booking_url', sa.String(500)),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_price_history_alert_id', 'price_history', ['alert_id'])
    op.create_index('ix_price_history_user_id', 'price_history', ['user_id'])

    op.create_table(
        'flight_tracks',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('carrier_code', sa.String(3), nullable=False),
        sa.Column('flight_number', sa.String(6), nullable=False),
        sa.Column('flight_date', sa.Date(), nullable=False),
        sa.Column('origin', sa.String(3)),
        sa.Column('destination', sa.String(3)),
        sa.Column('last_status', sa.JSON()),
        sa.Column('last_checked', sa.DateTime()),
        sa.Column('is_segment', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('segment_index', sa.Integer()),
        sa.Column('parent_route', sa.String(40)),
        sa.Column('status', tracking_status, nullable=False, server_default='ACTIVE'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('cancelled_at', sa.DateTime()),
        sa.UniqueConstraint('parent_route', 'segment_index', name='uq_flight_tracks_segment'),
    )
    op.create_index('ix_flight_tracks_user_id', 'flight_tracks', ['user_id'])
    op.create_index('ix_flight_tracks_parent_route', 'flight_tracks', ['parent_route'])
    op.create_index('ix_flight_tracks_status', 'flight_tracks', ['status'])


def downgrade():
    op.drop_table('flight_tracks')
    op.drop_table('price_history')
    op.drop_table('price_alerts')
    op.drop_table('users')
    tracking_status.drop(op.get_bind(), checkfirst=True)
    subscription_tier.drop(op.get_bind(), checkfirst=True)
