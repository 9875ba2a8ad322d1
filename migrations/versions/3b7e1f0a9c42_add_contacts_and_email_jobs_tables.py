"""Add contacts and email_jobs tables for the outbound email queue

Revision ID: 3b7e1f0a9c42
Revises:
Create Date: 2026-10-19 10:12:31.504118

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3b7e1f0a9c42'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Create contacts table
    op.create_table(
        'contacts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )

    # Create email_jobs table
    op.create_table(
        'email_jobs',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('type', sa.String(64), nullable=False, comment='Email job type'),
        sa.Column('status', sa.String(32), nullable=False, server_default='PENDING', comment='PENDING|IN_PROGRESS|SENT|FAILED'),
        sa.Column('contact_id', sa.String(36), nullable=True, comment='Referenced contact message'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0', comment='Failed attempts so far'),
        sa.Column('next_attempt_at_ms', sa.BigInteger(), nullable=False, comment='Earliest claim time (epoch ms)'),
        sa.Column('locked_at_ms', sa.BigInteger(), nullable=True, comment='When a worker claimed the job (epoch ms)'),
        sa.Column('locked_by', sa.String(255), nullable=True, comment='Worker ID holding the lock'),
        sa.Column('last_error', sa.Text(), nullable=True, comment='Last failure description'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='Optimistic concurrency counter'),
        sa.Column('created_at_ms', sa.BigInteger(), nullable=False),
        sa.Column('updated_at_ms', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            "status IN ('PENDING', 'IN_PROGRESS', 'SENT', 'FAILED')",
            name='email_jobs_status_check',
        ),
        sa.CheckConstraint('attempts >= 0', name='email_jobs_attempts_check'),
    )

    # Claim query: due PENDING jobs
    op.create_index('ix_email_jobs_status_next_attempt', 'email_jobs', ['status', 'next_attempt_at_ms'])
    # Reclaim query: stale IN_PROGRESS locks
    op.create_index('ix_email_jobs_status_locked_at', 'email_jobs', ['status', 'locked_at_ms'])
    op.create_index('ix_email_jobs_created_at', 'email_jobs', ['created_at_ms'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_email_jobs_created_at', table_name='email_jobs')
    op.drop_index('ix_email_jobs_status_locked_at', table_name='email_jobs')
    op.drop_index('ix_email_jobs_status_next_attempt', table_name='email_jobs')
    op.drop_table('email_jobs')
    op.drop_table('contacts')
