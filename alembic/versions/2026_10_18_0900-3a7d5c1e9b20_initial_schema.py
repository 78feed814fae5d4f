"""initial schema

Revision ID: 3a7d5c1e9b20
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3a7d5c1e9b20'
down_revision = None
branch_labels = None
depends_on = None


def _score_columns():
    return [
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('asset_id', sa.String(length=36), nullable=False),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('criteria_version_id', sa.String(length=36), nullable=False),
        sa.Column('score', sa.Numeric(9, 4), nullable=False),
        sa.Column('max_possible_score', sa.Numeric(9, 4), nullable=False),
        sa.Column('breakdown', sa.JSON(), nullable=False),
        sa.Column('calculated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['criteria_version_id'], ['criteria_versions.id']),
        sa.PrimaryKeyConstraint('id'),
    ]

def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('base_currency', sa.String(length=3), nullable=False),
        sa.Column('default_contribution', sa.Numeric(19, 4), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_table(
        'portfolios',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_portfolios_user_id'), 'portfolios', ['user_id'], unique=False)

    op.create_table(
        'asset_classes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('target_min', sa.Numeric(7, 4), nullable=True),
        sa.Column('target_max', sa.Numeric(7, 4), nullable=True),
        sa.Column('min_allocation_value', sa.Numeric(19, 4), nullable=True),
        sa.Column('max_assets', sa.Integer(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_asset_classes_user_id'), 'asset_classes', ['user_id'], unique=False)

    op.create_table(
        'asset_subclasses',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('class_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('target_min', sa.Numeric(7, 4), nullable=True),
        sa.Column('target_max', sa.Numeric(7, 4), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['class_id'], ['asset_classes.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_asset_subclasses_class_id'), 'asset_subclasses', ['class_id'], unique=False)

    op.create_table(
        'portfolio_assets',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('portfolio_id', sa.String(length=36), nullable=False),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('quantity', sa.Numeric(19, 8), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('class_id', sa.String(length=36), nullable=True),
        sa.Column('subclass_id', sa.String(length=36), nullable=True),
        sa.Column('is_ignored', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['portfolio_id'], ['portfolios.id']),
        sa.ForeignKeyConstraint(['class_id'], ['asset_classes.id']),
        sa.ForeignKeyConstraint(['subclass_id'], ['asset_subclasses.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('portfolio_id', 'symbol', name='uq_portfolio_asset_symbol')
    )
    op.create_index(op.f('ix_portfolio_assets_portfolio_id'), 'portfolio_assets', ['portfolio_id'], unique=False)

    op.create_table(
        'criteria_versions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('asset_type', sa.String(length=20), nullable=False),
        sa.Column('target_market', sa.String(length=50), nullable=False),
        sa.Column('criteria', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'asset_type', 'target_market', 'version', name='uq_criteria_version')
    )
    op.create_index('ix_criteria_versions_user_active', 'criteria_versions', ['user_id', 'is_active'], unique=False)

    op.create_table(
        'asset_fundamentals',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('data_date', sa.Date(), nullable=False),
        sa.Column('metrics', sa.JSON(), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('fetched_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('symbol', 'data_date', name='uq_fundamentals_symbol_date')
    )
    op.create_table(
        'asset_prices',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('price_date', sa.Date(), nullable=False),
        sa.Column('close', sa.Numeric(19, 4), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('fetched_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('symbol', 'price_date', name='uq_prices_symbol_date')
    )
    op.create_table(
        'exchange_rates',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('base_currency', sa.String(length=3), nullable=False),
        sa.Column('target_currency', sa.String(length=3), nullable=False),
        sa.Column('rate', sa.Numeric(19, 8), nullable=False),
        sa.Column('rate_date', sa.Date(), nullable=False),
        sa.Column('source', sa.String(length=50), nullable=False),
        sa.Column('fetched_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('base_currency', 'target_currency', 'rate_date', name='uq_rates_pair_date')
    )

    op.create_table(
        'asset_scores',
        *_score_columns(),
        sa.UniqueConstraint('user_id', 'asset_id', name='uq_asset_scores_user_asset')
    )
    op.create_table('score_history', *_score_columns())
    op.create_index(
        'ix_score_history_user_asset_date', 'score_history', ['user_id', 'asset_id', 'calculated_at'], unique=False
    )

    op.create_table(
        'calculation_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('correlation_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('correlation_id', 'sequence', name='uq_calculation_events_sequence')
    )
    op.create_index('ix_calculation_events_correlation', 'calculation_events', ['correlation_id'], unique=False)
    op.create_index('ix_calculation_events_user_created', 'calculation_events', ['user_id', 'created_at'], unique=False)
    op.create_index('ix_calculation_events_user_type', 'calculation_events', ['user_id', 'event_type'], unique=False)

    op.create_table(
        'recommendations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('portfolio_id', sa.String(length=36), nullable=False),
        sa.Column('correlation_id', sa.String(length=36), nullable=False),
        sa.Column('criteria_version_id', sa.String(length=36), nullable=False),
        sa.Column('total_investable', sa.Numeric(19, 4), nullable=False),
        sa.Column('allocated_total', sa.Numeric(19, 4), nullable=False),
        sa.Column('unallocated', sa.Numeric(19, 4), nullable=False),
        sa.Column('base_currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('audit', sa.JSON(), nullable=False),
        sa.Column('allocation_statuses', sa.JSON(), nullable=False),
        sa.Column('generated_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['portfolio_id'], ['portfolios.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('correlation_id')
    )
    op.create_index('ix_recommendations_user_generated', 'recommendations', ['user_id', 'generated_at'], unique=False)

    op.create_table(
        'recommendation_items',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('recommendation_id', sa.String(length=36), nullable=False),
        sa.Column('asset_id', sa.String(length=36), nullable=False),
        sa.Column('symbol', sa.String(length=20), nullable=False),
        sa.Column('class_id', sa.String(length=36), nullable=False),
        sa.Column('score', sa.Numeric(9, 4), nullable=False),
        sa.Column('current_allocation', sa.Numeric(9, 4), nullable=False),
        sa.Column('target_allocation', sa.Numeric(9, 4), nullable=False),
        sa.Column('allocation_gap', sa.Numeric(9, 4), nullable=False),
        sa.Column('priority', sa.Numeric(19, 4), nullable=False),
        sa.Column('recommended_amount', sa.Numeric(19, 4), nullable=False),
        sa.Column('is_over_allocated', sa.Boolean(), nullable=False),
        sa.Column('breakdown', sa.JSON(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['recommendation_id'], ['recommendations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        op.f('ix_recommendation_items_recommendation_id'), 'recommendation_items', ['recommendation_id'], unique=False
    )

    op.create_table(
        'overnight_job_runs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('job_type', sa.String(length=50), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('users_processed', sa.Integer(), nullable=False),
        sa.Column('users_failed', sa.Integer(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('metrics', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_overnight_job_runs_started', 'overnight_job_runs', ['started_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_overnight_job_runs_started', table_name='overnight_job_runs')
    op.drop_table('overnight_job_runs')
    op.drop_index(op.f('ix_recommendation_items_recommendation_id'), table_name='recommendation_items')
    op.drop_table('recommendation_items')
    op.drop_index('ix_recommendations_user_generated', table_name='recommendations')
    op.drop_table('recommendations')
    op.drop_index('ix_calculation_events_user_type', table_name='calculation_events')
    op.drop_index('ix_calculation_events_user_created', table_name='calculation_events')
    op.drop_index('ix_calculation_events_correlation', table_name='calculation_events')
    op.drop_table('calculation_events')
    op.drop_index('ix_score_history_user_asset_date', table_name='score_history')
    op.drop_table('score_history')
    op.drop_table('asset_scores')
    op.drop_table('exchange_rates')
    op.drop_table('asset_prices')
    op.drop_table('asset_fundamentals')
    op.drop_index('ix_criteria_versions_user_active', table_name='criteria_versions')
    op.drop_table('criteria_versions')
    op.drop_index(op.f('ix_portfolio_assets_portfolio_id'), table_name='portfolio_assets')
    op.drop_table('portfolio_assets')
    op.drop_index(op.f('ix_asset_subclasses_class_id'), table_name='asset_subclasses')
    op.drop_table('asset_subclasses')
    op.drop_index(op.f('ix_asset_classes_user_id'), table_name='asset_classes')
    op.drop_table('asset_classes')
    op.drop_index(op.f('ix_portfolios_user_id'), table_name='portfolios')
    op.drop_table('portfolios')
    op.drop_table('users')
