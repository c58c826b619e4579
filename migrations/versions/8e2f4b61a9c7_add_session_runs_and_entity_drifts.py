"""add session_runs and entity_drifts

Revision ID: 8e2f4b61a9c7
Revises: 5c1e9a27b3d0
Create Date: 2026-08-19 09:47:03.118254

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '8e2f4b61a9c7'
down_revision: Union[str, Sequence[str], None] = '5c1e9a27b3d0'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Session terminal fields, the live-session pointer, and drift records."""
    with op.batch_alter_table('entities') as batch_op:
        batch_op.add_column(sa.Column('started_at', sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True))
        batch_op.add_column(sa.Column('duration_seconds', sa.Integer(), nullable=True))

    # One row per campaign; the primary key is the compare-and-set
    op.create_table(
        'session_runs',
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['session_id'], ['entities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('campaign_id'),
    )

    op.create_table(
        'entity_drifts',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('entity_id', sa.String(), nullable=False),
        sa.Column('continuity_id', sa.String(), nullable=False),
        sa.Column('field', sa.String(length=100), nullable=False),
        sa.Column('event_derived_value', sa.Text(), nullable=False),
        sa.Column('current_value', sa.Text(), nullable=False),
        sa.Column('detected_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['continuity_id'], ['continuities.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('entity_id', 'continuity_id', 'field', name='uix_entity_drift_field'),
    )
    op.create_index(op.f('ix_entity_drifts_entity_id'), 'entity_drifts', ['entity_id'], unique=False)
    op.create_index(op.f('ix_entity_drifts_continuity_id'), 'entity_drifts', ['continuity_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_entity_drifts_continuity_id'), table_name='entity_drifts')
    op.drop_index(op.f('ix_entity_drifts_entity_id'), table_name='entity_drifts')
    op.drop_table('entity_drifts')
    op.drop_table('session_runs')
    with op.batch_alter_table('entities') as batch_op:
        batch_op.drop_column('duration_seconds')
        batch_op.drop_column('ended_at')
        batch_op.drop_column('started_at')
