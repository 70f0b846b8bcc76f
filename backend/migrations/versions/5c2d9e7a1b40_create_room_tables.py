"""create room, player, round, guess and score_entry tables

Revision ID: 5c2d9e7a1b40
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2d9e7a1b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'room',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=True),
        sa.Column('settings', sa.Text(), nullable=True),
        sa.Column('current_round_index', sa.Integer(), nullable=True),
        sa.Column('content_sequence', sa.Text(), nullable=True),
        sa.Column('host_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.Float(), nullable=True),
        sa.Column('finished_at', sa.Float(), nullable=True),
        sa.Column('canceled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('room') as batch_op:
        batch_op.create_index(batch_op.f('ix_room_status'), ['status'], unique=False)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.String(length=32), nullable=False),
        sa.Column('player_id', sa.String(length=64), nullable=False),
        sa.Column('display_name', sa.String(length=64), nullable=False),
        sa.Column('connection_state', sa.String(length=16), nullable=False),
        sa.Column('joined_at', sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'player_id', name='uq_player_room_player'),
    )
    with op.batch_alter_table('player') as batch_op:
        batch_op.create_index(batch_op.f('ix_player_room_id'), ['room_id'], unique=False)

    op.create_table(
        'room_round',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.String(length=32), nullable=False),
        sa.Column('round_index', sa.Integer(), nullable=False),
        sa.Column('content_id', sa.String(length=64), nullable=False),
        sa.Column('started_at', sa.Float(), nullable=True),
        sa.Column('deadline_at', sa.Float(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('resolved_at', sa.Float(), nullable=True),
        sa.Column('resolution', sa.String(length=16), nullable=True),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'round_index', name='uq_round_room_index'),
    )
    with op.batch_alter_table('room_round') as batch_op:
        batch_op.create_index(batch_op.f('ix_room_round_room_id'), ['room_id'], unique=False)

    op.create_table(
        'guess',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('room_id', sa.String(length=32), nullable=False),
        sa.Column('player_id', sa.String(length=64), nullable=False),
        sa.Column('round_index', sa.Integer(), nullable=False),
        sa.Column('raw_text', sa.Text(), nullable=False),
        sa.Column('submitted_at', sa.Float(), nullable=False),
        sa.Column('outcome', sa.String(length=16), nullable=False),
        sa.Column('score_awarded', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('guess') as batch_op:
        batch_op.create_index(batch_op.f('ix_guess_room_id'), ['room_id'], unique=False)

    op.create_table(
        'score_entry',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('room_id', sa.String(length=32), nullable=False),
        sa.Column('player_id', sa.String(length=64), nullable=False),
        sa.Column('round_index', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('outcome', sa.String(length=16), nullable=True),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('recorded_at', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['room.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'seq', name='uq_score_entry_room_seq'),
    )
    with op.batch_alter_table('score_entry') as batch_op:
        batch_op.create_index(batch_op.f('ix_score_entry_room_id'), ['room_id'], unique=False)


def downgrade():
    for table in ('score_entry', 'guess', 'room_round', 'player'):
        with op.batch_alter_table(table) as batch_op:
            batch_op.drop_index(batch_op.f(f'ix_{table}_room_id'))
        op.drop_table(table)
    with op.batch_alter_table('room') as batch_op:
        batch_op.drop_index(batch_op.f('ix_room_status'))
    op.drop_table('room')
