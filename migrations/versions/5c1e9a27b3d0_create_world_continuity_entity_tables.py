"""create world, continuity and entity tables

Revision ID: 5c1e9a27b3d0
Revises:
Create Date: 2026-08-02 14:11:52.402913

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c1e9a27b3d0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create worlds, continuities, campaigns and the single entities table."""
    op.create_table(
        'worlds',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'continuities',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('world_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('branched_from_id', sa.String(), nullable=True),
        sa.Column('branch_point_event_id', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['world_id'], ['worlds.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['branched_from_id'], ['continuities.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_continuities_world_id'), 'continuities', ['world_id'], unique=False)
    op.create_index(op.f('ix_continuities_modified_at'), 'continuities', ['modified_at'], unique=False)

    op.create_table(
        'campaigns',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('world_id', sa.String(), nullable=False),
        sa.Column('continuity_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['world_id'], ['worlds.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['continuity_id'], ['continuities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_campaigns_world_id'), 'campaigns', ['world_id'], unique=False)
    op.create_index(op.f('ix_campaigns_continuity_id'), 'campaigns', ['continuity_id'], unique=False)

    op.create_table(
        'entities',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('world_id', sa.String(), nullable=False),
        sa.Column('campaign_id', sa.String(), nullable=True),
        sa.Column('continuity_id', sa.String(), nullable=True),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('secrets', sa.Text(), nullable=False, server_default=''),
        sa.Column('tags', sa.JSON(), nullable=False),
        sa.Column('type_specific_fields', sa.JSON(), nullable=False),
        sa.Column('outcomes', sa.JSON(), nullable=True),
        sa.Column('outcomes_version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['world_id'], ['worlds.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['campaign_id'], ['campaigns.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['continuity_id'], ['continuities.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_entities_type'), 'entities', ['type'], unique=False)
    op.create_index(op.f('ix_entities_world_id'), 'entities', ['world_id'], unique=False)
    op.create_index(op.f('ix_entities_campaign_id'), 'entities', ['campaign_id'], unique=False)
    op.create_index(op.f('ix_entities_continuity_id'), 'entities', ['continuity_id'], unique=False)
    op.create_index('ix_entities_continuity_type', 'entities', ['continuity_id', 'type'], unique=False)


def downgrade() -> None:
    """Drop every table created above, children first."""
    op.drop_index('ix_entities_continuity_type', table_name='entities')
    op.drop_index(op.f('ix_entities_continuity_id'), table_name='entities')
    op.drop_index(op.f('ix_entities_campaign_id'), table_name='entities')
    op.drop_index(op.f('ix_entities_world_id'), table_name='entities')
    op.drop_index(op.f('ix_entities_type'), table_name='entities')
    op.drop_table('entities')
    op.drop_index(op.f('ix_campaigns_continuity_id'), table_name='campaigns')
    op.drop_index(op.f('ix_campaigns_world_id'), table_name='campaigns')
    op.drop_table('campaigns')
    op.drop_index(op.f('ix_continuities_modified_at'), table_name='continuities')
    op.drop_index(op.f('ix_continuities_world_id'), table_name='continuities')
    op.drop_table('continuities')
    op.drop_table('worlds')
