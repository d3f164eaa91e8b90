"""Create extraction_jobs table

Revision ID: 0002_create_extraction_jobs
Revises: 0001_create_products
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_create_extraction_jobs'
down_revision = '0001_create_products'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('extraction_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('payload', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='queued'),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lease_id', sa.String(length=32), nullable=True),
        sa.Column('owner_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "status IN ('queued', 'processing', 'succeeded', 'failed')",
            name='ck_extraction_jobs_status',
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_extraction_jobs_status'), 'extraction_jobs', ['status'], unique=False)
    op.create_index(op.f('ix_extraction_jobs_owner_id'), 'extraction_jobs', ['owner_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_extraction_jobs_owner_id'), table_name='extraction_jobs')
    op.drop_index(op.f('ix_extraction_jobs_status'), table_name='extraction_jobs')
    op.drop_table('extraction_jobs')
