"""Add primary source listing state, merge aliases, reviews and metadata

Revision ID: 002_primary_source_tracking
Revises: 001_initial
Create Date: 2026-09-28 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_primary_source_tracking'
down_revision = '001_initial'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Listing state drives which decay curve applies
    op.add_column(
        'products',
        sa.Column('on_primary_source', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.add_column('products', sa.Column('last_seen_on_primary_source', sa.DateTime(), nullable=True))

    # Optional re-entry anchor for days trending
    op.add_column('products', sa.Column('decay_anchor_at', sa.DateTime(), nullable=True))

    op.create_index('ix_products_on_primary_source', 'products', ['on_primary_source'])

    # Slugs of merged-away products
    op.create_table(
        'product_aliases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('slug'),
    )
    op.create_index('ix_product_aliases_product_id', 'product_aliases', ['product_id'])

    # Quotes harvested from discussion sources
    op.create_table(
        'product_reviews',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=64), nullable=False),
        sa.Column('external_ref', sa.String(length=255), nullable=False),
        sa.Column('author', sa.String(length=128), nullable=True),
        sa.Column('quote', sa.Text(), nullable=False),
        sa.Column('helpful_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('product_id', 'source', 'external_ref', name='uq_review_source_ref'),
    )
    op.create_index('ix_product_reviews_product_id', 'product_reviews', ['product_id'])

    # Ratings refreshed by the metadata job
    op.create_table(
        'product_metadata',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('star_rating', sa.Float(), nullable=True),
        sa.Column('review_count', sa.Integer(), nullable=True),
        sa.Column('last_checked_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('product_id'),
    )


def downgrade() -> None:
    op.drop_table('product_metadata')
    op.drop_index('ix_product_reviews_product_id', table_name='product_reviews')
    op.drop_table('product_reviews')
    op.drop_index('ix_product_aliases_product_id', table_name='product_aliases')
    op.drop_table('product_aliases')

    op.drop_index('ix_products_on_primary_source', table_name='products')
    op.drop_column('products', 'decay_anchor_at')
    op.drop_column('products', 'last_seen_on_primary_source')
    op.drop_column('products', 'on_primary_source')
