"""Initial migration

Revision ID: 001_initial
Revises:
Create Date: 2026-09-14 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Products table
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('brand', sa.String(length=128), nullable=True),
        sa.Column('canonical_url', sa.Text(), nullable=True),
        sa.Column('external_key', sa.String(length=128), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('base_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('peak_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('days_trending', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('first_detected_at', sa.DateTime(), nullable=True),
        sa.Column('last_scored_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='FLAGGED'),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_key'),
        sa.CheckConstraint('base_score >= 0 AND base_score <= 100', name='ck_product_base_score'),
        sa.CheckConstraint('current_score >= 0 AND current_score <= 100', name='ck_product_current_score'),
    )

    # Signals table (append-only)
    op.create_table(
        'signals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=64), nullable=False),
        sa.Column('signal_type', sa.String(length=64), nullable=False),
        sa.Column('value', sa.Float(), nullable=True),
        sa.Column('metadata_json', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('external_ref', sa.String(length=255), nullable=False),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('product_id', 'source', 'external_ref', name='uq_signal_idempotency'),
    )

    # Score history table
    op.create_table(
        'score_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(length=64), nullable=True),
        sa.Column('base_score', sa.Integer(), nullable=False),
        sa.Column('current_score', sa.Integer(), nullable=False),
        sa.Column('recorded_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
    )

    # Generated content table
    op.create_table(
        'product_content',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('product_id'),
        sa.UniqueConstraint('slug'),
    )

    # Lifecycle audit table
    op.create_table(
        'status_audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(length=16), nullable=False),
        sa.Column('to_status', sa.String(length=16), nullable=False),
        sa.Column('actor', sa.String(length=64), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
    )

    # Batch job runs table
    op.create_table(
        'job_runs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('run_id', sa.String(length=64), nullable=False),
        sa.Column('job_type', sa.String(length=32), nullable=False),
        sa.Column('trigger', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    # Create indexes
    op.create_index('ix_products_status_current_score', 'products', ['status', 'current_score'])
    op.create_index('ix_signals_product_id', 'signals', ['product_id'])
    op.create_index('ix_signals_source_detected_at', 'signals', ['source', 'detected_at'])
    op.create_index('ix_score_history_product_recorded', 'score_history', ['product_id', 'recorded_at'])
    op.create_index('ix_status_audits_product_id', 'status_audits', ['product_id'])
    op.create_index('ix_job_runs_run_id', 'job_runs', ['run_id'])


def downgrade() -> None:
    # Drop indexes
    op.drop_index('ix_job_runs_run_id', table_name='job_runs')
    op.drop_index('ix_status_audits_product_id', table_name='status_audits')
    op.drop_index('ix_score_history_product_recorded', table_name='score_history')
    op.drop_index('ix_signals_source_detected_at', table_name='signals')
    op.drop_index('ix_signals_product_id', table_name='signals')
    op.drop_index('ix_products_status_current_score', table_name='products')

    # Drop tables
    op.drop_table('job_runs')
    op.drop_table('status_audits')
    op.drop_table('product_content')
    op.drop_table('score_history')
    op.drop_table('signals')
    op.drop_table('products')
