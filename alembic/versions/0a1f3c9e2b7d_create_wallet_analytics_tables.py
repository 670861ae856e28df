"""create_wallet_analytics_tables

Revision ID: 0a1f3c9e2b7d
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0a1f3c9e2b7d'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _wallet_fk() -> sa.Column:
    return sa.Column(
        'wallet_id', sa.Integer(),
        sa.ForeignKey('wallets.id', ondelete='CASCADE'), nullable=False,
    )


def upgrade() -> None:
    """Create projects, wallets and all analytics tables."""

    op.create_table(
        'projects',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(length=255), nullable=False, comment='Project name'),
        sa.Column('owner', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'project_id', sa.Integer(),
            sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('address', sa.String(length=255), nullable=False),
        sa.Column('address_type', sa.String(length=20), nullable=False, server_default='transparent'),
        sa.Column('network', sa.String(length=10), nullable=False, server_default='mainnet'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_wallets_project_id', 'wallets', ['project_id'])
    op.create_index('ix_wallets_address', 'wallets', ['address'])

    op.create_table(
        'processed_transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _wallet_fk(),
        sa.Column('txid', sa.String(length=64), nullable=False),
        sa.Column('block_height', sa.Integer(), nullable=True),
        sa.Column('block_timestamp', sa.DateTime(timezone=True), nullable=True),
        sa.Column('tx_type', sa.String(length=20), nullable=False),
        sa.Column('tx_subtype', sa.String(length=20), nullable=True),
        sa.Column('value_zatoshi', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('fee_zatoshi', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('counterparty_address', sa.Text(), nullable=True),
        sa.Column('counterparty_type', sa.String(length=20), nullable=False, server_default='unknown'),
        sa.Column('feature_used', sa.String(length=50), nullable=True),
        sa.Column('sequence_position', sa.Integer(), nullable=True),
        sa.Column('time_since_previous_tx_minutes', sa.Integer(), nullable=True),
        sa.Column('is_shielded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('shielded_pool_entry', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('shielded_pool_exit', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('complexity_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('wallet_id', 'txid', name='uq_processed_tx_wallet_txid'),
    )
    op.create_index('ix_processed_transactions_wallet_id', 'processed_transactions', ['wallet_id'])
    op.create_index('ix_processed_transactions_txid', 'processed_transactions', ['txid'])
    op.create_index(
        'ix_processed_transactions_block_timestamp', 'processed_transactions', ['block_timestamp']
    )
    op.create_index(
        'idx_processed_tx_wallet_timestamp', 'processed_transactions', ['wallet_id', 'block_timestamp']
    )

    op.create_table(
        'wallet_activity_metrics',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _wallet_fk(),
        sa.Column('activity_date', sa.Date(), nullable=False),
        sa.Column('transaction_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_volume_zatoshi', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_fees_paid', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('transfers_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('swaps_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('bridges_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shielded_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('sequence_complexity_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_returning', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('wallet_id', 'activity_date', name='uq_activity_wallet_date'),
    )
    op.create_index('ix_wallet_activity_metrics_wallet_id', 'wallet_activity_metrics', ['wallet_id'])
    op.create_index('ix_wallet_activity_metrics_activity_date', 'wallet_activity_metrics', ['activity_date'])

    op.create_table(
        'wallet_cohorts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('cohort_type', sa.String(length=10), nullable=False),
        sa.Column('cohort_period', sa.Date(), nullable=False),
        sa.Column('wallet_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('retention_week_1', sa.Float(), nullable=True),
        sa.Column('retention_week_2', sa.Float(), nullable=True),
        sa.Column('retention_week_3', sa.Float(), nullable=True),
        sa.Column('retention_week_4', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('cohort_type', 'cohort_period', name='uq_cohort_type_period'),
    )
    op.create_index('ix_wallet_cohorts_cohort_type', 'wallet_cohorts', ['cohort_type'])
    op.create_index('ix_wallet_cohorts_cohort_period', 'wallet_cohorts', ['cohort_period'])

    op.create_table(
        'wallet_cohort_assignments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _wallet_fk(),
        sa.Column(
            'cohort_id', sa.Integer(),
            sa.ForeignKey('wallet_cohorts.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('wallet_id', 'cohort_id', name='uq_cohort_assignment'),
    )
    op.create_index('ix_wallet_cohort_assignments_wallet_id', 'wallet_cohort_assignments', ['wallet_id'])
    op.create_index('ix_wallet_cohort_assignments_cohort_id', 'wallet_cohort_assignments', ['cohort_id'])

    op.create_table(
        'wallet_adoption_stages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _wallet_fk(),
        sa.Column('stage_name', sa.String(length=20), nullable=False),
        sa.Column('stage_order', sa.Integer(), nullable=False),
        sa.Column('achieved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('hours_to_achieve', sa.Float(), nullable=True),
        sa.Column('confidence', sa.Float(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('wallet_id', 'stage_name', name='uq_wallet_stage'),
    )
    op.create_index('ix_wallet_adoption_stages_wallet_id', 'wallet_adoption_stages', ['wallet_id'])

    op.create_table(
        'wallet_productivity_scores',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'wallet_id', sa.Integer(),
            sa.ForeignKey('wallets.id', ondelete='CASCADE'), nullable=False, unique=True,
        ),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('retention_score', sa.Float(), nullable=False),
        sa.Column('adoption_score', sa.Float(), nullable=False),
        sa.Column('churn_score', sa.Float(), nullable=False),
        sa.Column('frequency_score', sa.Float(), nullable=False),
        sa.Column('activity_score', sa.Float(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('risk_level', sa.String(length=10), nullable=False),
        sa.Column('calculated_at', sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        'shielded_pool_metrics',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _wallet_fk(),
        sa.Column('metric_date', sa.Date(), nullable=False),
        sa.Column('shielded_tx_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('transparent_tx_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('transparent_to_shielded_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shielded_to_transparent_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('internal_shielded_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('shielded_volume_zatoshi', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('transparent_to_shielded_volume', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('shielded_to_transparent_volume', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('avg_shielded_duration_hours', sa.Float(), nullable=True),
        sa.Column('privacy_score', sa.Integer(), nullable=False, server_default='0'),
        sa.UniqueConstraint('wallet_id', 'metric_date', name='uq_shielded_metric_wallet_date'),
    )
    op.create_index('ix_shielded_pool_metrics_wallet_id', 'shielded_pool_metrics', ['wallet_id'])

    op.create_table(
        'wallet_behavior_flows',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        _wallet_fk(),
        sa.Column('flow_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('flow_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('flow_type', sa.String(length=30), nullable=False),
        sa.Column('complexity', sa.String(length=10), nullable=False),
        sa.Column('transaction_count', sa.Integer(), nullable=False),
        sa.Column('shielded_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duration_minutes', sa.Float(), nullable=False, server_default='0'),
        sa.Column('has_entry', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_exit', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_wallet_behavior_flows_wallet_id', 'wallet_behavior_flows', ['wallet_id'])
    op.create_index('idx_behavior_flow_wallet_start', 'wallet_behavior_flows', ['wallet_id', 'flow_start'])


def downgrade() -> None:
    """Drop all analytics tables."""
    for table in (
        'wallet_behavior_flows',
        'shielded_pool_metrics',
        'wallet_productivity_scores',
        'wallet_adoption_stages',
        'wallet_cohort_assignments',
        'wallet_cohorts',
        'wallet_activity_metrics',
        'processed_transactions',
        'wallets',
        'projects',
    ):
        op.drop_table(table)
