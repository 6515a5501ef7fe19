"""create leaderboard_entry

Revision ID: 4b7e2a9c1d30
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7e2a9c1d30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    if 'leaderboard_entry' in insp.get_table_names():
        return
    op.create_table(
        'leaderboard_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('initials', sa.String(length=3), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('room_code', sa.String(length=4), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('leaderboard_entry') as batch_op:
        batch_op.create_index('ix_leaderboard_entry_initials', ['initials'], unique=False)
        batch_op.create_index('ix_leaderboard_entry_score', ['score'], unique=False)


def downgrade():
    with op.batch_alter_table('leaderboard_entry') as batch_op:
        batch_op.drop_index('ix_leaderboard_entry_score')
        batch_op.drop_index('ix_leaderboard_entry_initials')
    op.drop_table('leaderboard_entry')
