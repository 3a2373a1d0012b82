"""create progression ledger tables

Revision ID: 3f9a1c7e2b40
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a1c7e2b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('timezone', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Append-only ledger
    op.create_table(
        'xp_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('currency', sa.String(length=16), server_default='xp', nullable=False),
        sa.Column('source', sa.String(length=64), nullable=False),
        sa.Column('base_amount', sa.Integer(), nullable=False),
        sa.Column('tier_multiplier', sa.Numeric(6, 3), server_default='1', nullable=False),
        sa.Column('streak_bonus', sa.Numeric(6, 3), server_default='1', nullable=False),
        sa.Column('final_amount', sa.Integer(), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=False),
        sa.Column('activity_day', sa.Date(), nullable=False),
        sa.Column('subject', sa.String(length=64), nullable=True),
        sa.Column('ref_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'idempotency_key', name='uq_xp_transactions_user_key'),
    )
    op.create_index('ix_xp_transactions_user_id', 'xp_transactions', ['user_id'])
    op.create_index('ix_xp_transactions_user_day', 'xp_transactions', ['user_id', 'activity_day'])

    op.create_table(
        'achievement_unlocks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('achievement_id', sa.String(length=64), nullable=False),
        sa.Column('unlocked_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'achievement_id', name='uq_achievement_unlock'),
    )
    op.create_index('ix_achievement_unlocks_user_id', 'achievement_unlocks', ['user_id'])

    op.create_table(
        'reward_tier_claims',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('tier_id', sa.String(length=64), nullable=False),
        sa.Column('bonus_coins', sa.Integer(), nullable=False),
        sa.Column('claimed_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'tier_id', name='uq_reward_tier_claim'),
    )
    op.create_index('ix_reward_tier_claims_user_id', 'reward_tier_claims', ['user_id'])

    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('referrer_id', sa.String(length=64), nullable=False),
        sa.Column('referred_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), server_default='pending', nullable=False),
        sa.Column('coins_earned', sa.Integer(), server_default='0', nullable=False),
        sa.Column('completed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referred_id'),
    )
    op.create_index('ix_referrals_referrer_id', 'referrals', ['referrer_id'])

    op.create_table(
        'user_subscriptions',
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('tier', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), server_default='active', nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id'),
    )

    # Read models
    op.create_table(
        'projector_checkpoints',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('projector_name', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('last_transaction_id', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('projector_name', 'user_id', name='uq_projector_user'),
    )

    op.create_table(
        'progression_state',
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('total_xp', sa.Integer(), server_default='0', nullable=False),
        sa.Column('level', sa.Integer(), server_default='1', nullable=False),
        sa.Column('level_progress', sa.Float(), server_default='0', nullable=False),
        sa.Column('streak_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('best_streak', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_active_day', sa.Date(), nullable=True),
        sa.Column('coins', sa.Integer(), server_default='0', nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True),
                  server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('user_id'),
    )


def downgrade() -> None:
    op.drop_table('progression_state')
    op.drop_table('projector_checkpoints')
    op.drop_table('user_subscriptions')
    op.drop_index('ix_referrals_referrer_id', table_name='referrals')
    op.drop_table('referrals')
    op.drop_index('ix_reward_tier_claims_user_id', table_name='reward_tier_claims')
    op.drop_table('reward_tier_claims')
    op.drop_index('ix_achievement_unlocks_user_id', table_name='achievement_unlocks')
    op.drop_table('achievement_unlocks')
    op.drop_index('ix_xp_transactions_user_day', table_name='xp_transactions')
    op.drop_index('ix_xp_transactions_user_id', table_name='xp_transactions')
    op.drop_table('xp_transactions')
    op.drop_table('users')
