"""add quick_notes and session_feedback

Revision ID: c4a7d2e95f13
Revises: 8e2f4b61a9c7
Create Date: 2026-10-18 14:12:40.503917

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'c4a7d2e95f13'
down_revision: Union[str, Sequence[str], None] = '8e2f4b61a9c7'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Table-side quick notes and Stars & Wishes feedback, both owned by a session."""
    op.create_table(
        'quick_notes',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('captured_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('linked_entity_ids', sa.JSON(), nullable=False),
        sa.Column('visibility', sa.String(length=10), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['entities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_quick_notes_session_id'), 'quick_notes', ['session_id'], unique=False)
    op.create_index(op.f('ix_quick_notes_captured_at'), 'quick_notes', ['captured_at'], unique=False)

    op.create_table(
        'session_feedback',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('feedback_type', sa.String(length=10), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('collected_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['entities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_session_feedback_session_id'), 'session_feedback', ['session_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_session_feedback_session_id'), table_name='session_feedback')
    op.drop_table('session_feedback')
    op.drop_index(op.f('ix_quick_notes_captured_at'), table_name='quick_notes')
    op.drop_index(op.f('ix_quick_notes_session_id'), table_name='quick_notes')
    op.drop_table('quick_notes')
