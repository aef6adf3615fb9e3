"""create quiz, player and player_answer tables

Revision ID: 4c2a9e7d1b30
Revises:
Create Date: 2026-10-16 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e7d1b30'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'quiz',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('game_pin', sa.String(length=6), nullable=False),
        sa.Column('admin_id', sa.String(length=64), nullable=False),
        sa.Column('questions_json', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('current_question_index', sa.Integer(), nullable=False),
        sa.Column('is_showing_results', sa.Boolean(), nullable=False),
        sa.Column('allow_late_join', sa.Boolean(), nullable=False),
        sa.Column('penalize_wrong_answers', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('question_started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('quiz') as batch_op:
        batch_op.create_index(batch_op.f('ix_quiz_game_pin'), ['game_pin'], unique=False)

    op.create_table(
        'player',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('quiz_id', sa.String(length=36), nullable=False),
        sa.Column('game_pin', sa.String(length=6), nullable=False),
        sa.Column('nickname', sa.String(length=64), nullable=False),
        sa.Column('team', sa.String(length=64), nullable=True),
        sa.Column('school', sa.String(length=128), nullable=True),
        sa.Column('avatar', sa.String(length=32), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_activity_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['quiz_id'], ['quiz.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('quiz_id', 'nickname', name='uq_player_quiz_nickname'),
    )
    with op.batch_alter_table('player') as batch_op:
        batch_op.create_index(batch_op.f('ix_player_quiz_id'), ['quiz_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_player_game_pin'), ['game_pin'], unique=False)

    op.create_table(
        'player_answer',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('player_id', sa.String(length=36), nullable=False),
        sa.Column('question_id', sa.String(length=64), nullable=False),
        sa.Column('answer', sa.String(length=1), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('time_taken_ms', sa.Integer(), nullable=False),
        sa.Column('points_earned', sa.Integer(), nullable=False),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['player_id'], ['player.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('player_id', 'question_id', name='uq_answer_player_question'),
    )
    with op.batch_alter_table('player_answer') as batch_op:
        batch_op.create_index(batch_op.f('ix_player_answer_player_id'), ['player_id'], unique=False)


def downgrade():
    with op.batch_alter_table('player_answer') as batch_op:
        batch_op.drop_index(batch_op.f('ix_player_answer_player_id'))
    op.drop_table('player_answer')
    with op.batch_alter_table('player') as batch_op:
        batch_op.drop_index(batch_op.f('ix_player_game_pin'))
        batch_op.drop_index(batch_op.f('ix_player_quiz_id'))
    op.drop_table('player')
    with op.batch_alter_table('quiz') as batch_op:
        batch_op.drop_index(batch_op.f('ix_quiz_game_pin'))
    op.drop_table('quiz')
