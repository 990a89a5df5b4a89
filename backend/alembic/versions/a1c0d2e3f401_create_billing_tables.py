"""create billing tables

Revision ID: a1c0d2e3f401
Revises:
Create Date: 2026-10-17 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1c0d2e3f401'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('role', sa.Enum('user', 'admin', name='user_role'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_trial_used', sa.Boolean(), nullable=False, comment='デモ料金プラン使用済み'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('city', sa.String(255), nullable=False),
        sa.Column('region', sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'tariffs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(255), nullable=False, comment='料金プラン名'),
        sa.Column('code', sa.String(50), nullable=False, comment='demo / premium / premium_7 ...'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('duration_hours', sa.Integer(), nullable=False, comment='標準付与時間 (時間)'),
        sa.Column('base_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )

    op.create_table(
        'tariff_prices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tariff_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['tariff_id'], ['tariffs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tariff_id', 'location_id', name='uq_tariff_prices_tariff_location'),
    )
    op.create_index('ix_tariff_prices_tariff_id', 'tariff_prices', ['tariff_id'])
    op.create_index('ix_tariff_prices_location_id', 'tariff_prices', ['location_id'])

    op.create_table(
        'user_subscriptions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('tariff_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('price_paid', sa.Numeric(10, 2), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('pending', 'active', 'extend_pending', 'expired', 'cancelled', name='subscription_status'),
            nullable=False,
        ),
        sa.Column('is_enabled', sa.Boolean(), nullable=False),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('approved_by', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('requested_tariff_id', sa.Integer(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, comment='楽観ロック用'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tariff_id'], ['tariffs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['approved_by'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['requested_tariff_id'], ['tariffs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_subscriptions_user_id', 'user_subscriptions', ['user_id'])
    op.create_index('ix_user_subscriptions_tariff_id', 'user_subscriptions', ['tariff_id'])
    op.create_index('ix_user_subscriptions_end_date', 'user_subscriptions', ['end_date'])
    op.create_index('ix_user_subscriptions_status', 'user_subscriptions', ['status'])

    op.create_table(
        'subscription_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(32), nullable=False),
        sa.Column('tariff_name', sa.String(255), nullable=False),
        sa.Column('category_name', sa.String(255), nullable=False),
        sa.Column('location_name', sa.String(255), nullable=False),
        sa.Column('price_paid', sa.Numeric(10, 2), nullable=False),
        sa.Column('action_date', sa.DateTime(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['subscription_id'], ['user_subscriptions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_subscription_history_user_id', 'subscription_history', ['user_id'])
    op.create_index('ix_subscription_history_subscription_id', 'subscription_history', ['subscription_id'])
    op.create_index('ix_subscription_history_action', 'subscription_history', ['action'])
    op.create_index('ix_subscription_history_action_date', 'subscription_history', ['action_date'])


def downgrade() -> None:
    op.drop_table('subscription_history')
    op.drop_table('user_subscriptions')
    op.drop_table('tariff_prices')
    op.drop_table('tariffs')
    op.drop_table('locations')
    op.drop_table('categories')
    op.drop_table('users')
