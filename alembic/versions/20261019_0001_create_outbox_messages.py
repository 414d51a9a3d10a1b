"""create_outbox_messages

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '3f1c9a7e2b10'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create outbox_messages table for the transactional outbox."""
    op.create_table(
        'outbox_messages',
        # Primary key (UUID v7 for time-ordering)
        sa.Column('id', sa.Uuid(), nullable=False, comment='UUID v7 primary key (time-sortable)'),

        # Message
        sa.Column('topic', sa.String(length=255), nullable=False, comment='Destination topic / routing key'),
        sa.Column(
            'payload',
            sa.JSON().with_variant(postgresql.JSONB(), 'postgresql'),
            nullable=False,
            comment='Event payload, serialized at enqueue time',
        ),

        # Delivery state
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending', comment='pending | processed | failed'),
        sa.Column('attempt_count', sa.Integer(), nullable=False, server_default='0', comment='Number of failed publish attempts'),
        sa.Column('next_attempt_at', sa.DateTime(timezone=True), nullable=True, comment='Earliest time of the next publish attempt'),

        # Timestamps
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), comment='Timestamp of record creation'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now(), comment='Timestamp of last update'),

        sa.CheckConstraint(
            "status IN ('pending', 'processed', 'failed')",
            name=op.f('ck_outbox_messages_status_valid'),
        ),
        sa.CheckConstraint('attempt_count >= 0', name=op.f('ck_outbox_messages_attempt_count_non_negative')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_outbox_messages')),
    )

    op.create_index(op.f('ix_outbox_messages_status'), 'outbox_messages', ['status'], unique=False)
    op.create_index(op.f('ix_outbox_messages_next_attempt_at'), 'outbox_messages', ['next_attempt_at'], unique=False)

    # Due-query: pending rows whose retry time has passed, oldest first
    op.create_index(
        'ix_outbox_messages_due',
        'outbox_messages',
        ['status', 'next_attempt_at', 'created_at'],
        unique=False,
    )


def downgrade() -> None:
    """Drop outbox_messages table."""
    op.drop_index('ix_outbox_messages_due', table_name='outbox_messages')
    op.drop_index(op.f('ix_outbox_messages_next_attempt_at'), table_name='outbox_messages')
    op.drop_index(op.f('ix_outbox_messages_status'), table_name='outbox_messages')
    op.drop_table('outbox_messages')
