"""create player_session

Revision ID: 5b7c1d2e9f30
Revises:
Create Date: 2026-10-16 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7c1d2e9f30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'player_session',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('display_name', sa.String(length=12), nullable=False),
        sa.Column('avatar_id', sa.String(length=16), nullable=False),
        sa.Column('game_code', sa.String(length=6), nullable=False),
        sa.Column('is_creator', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.Float(), nullable=False),
        sa.Column('last_seen_at', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('player_session') as batch_op:
        batch_op.create_index('ix_player_session_game_code', ['game_code'], unique=False)


def downgrade():
    with op.batch_alter_table('player_session') as batch_op:
        batch_op.drop_index('ix_player_session_game_code')
    op.drop_table('player_session')
