"""create quiz, question, game session and player tables

Revision ID: 4c7e1a9b2d10
Revises:
Create Date: 2026-09-14 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7e1a9b2d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=120), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_email', 'user', ['email'], unique=True)

    op.create_table(
        'quiz',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['owner_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_quiz_owner_id', 'quiz', ['owner_id'])

    op.create_table(
        'question',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quiz_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(length=32), nullable=False),
        sa.Column('options', sa.JSON(), nullable=False),
        sa.Column('correct_answer', sa.Integer(), nullable=False),
        sa.Column('time_limit', sa.Integer(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('image_url', sa.String(length=512), nullable=True),
        sa.Column('video_url', sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(['quiz_id'], ['quiz.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_question_quiz_id', 'question', ['quiz_id'])

    op.create_table(
        'game_session',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quiz_id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('pin', sa.String(length=6), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('current_question', sa.Integer(), nullable=False),
        sa.Column('question_started_at', sa.Float(), nullable=True),
        sa.Column('question_deadline', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['quiz_id'], ['quiz.id']),
        sa.ForeignKeyConstraint(['owner_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_game_session_quiz_id', 'game_session', ['quiz_id'])
    op.create_index('ix_game_session_owner_id', 'game_session', ['owner_id'])
    # PINs are reserved only while a session is waiting or active
    op.create_index(
        'uq_game_session_open_pin', 'game_session', ['pin'], unique=True,
        sqlite_where=sa.text("status != 'finished'"),
        postgresql_where=sa.text("status != 'finished'"),
    )

    op.create_table(
        'player_session',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_session_id', sa.Integer(), nullable=False),
        sa.Column('player_name', sa.String(length=64), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['game_session_id'], ['game_session.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('game_session_id', 'player_name', name='uq_player_session_name'),
    )
    op.create_index('ix_player_session_game_session_id', 'player_session', ['game_session_id'])

    op.create_table(
        'player_answer',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('player_session_id', sa.Integer(), nullable=False),
        sa.Column('question_id', sa.Integer(), nullable=False),
        sa.Column('question_index', sa.Integer(), nullable=False),
        sa.Column('selected_answer', sa.Integer(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False),
        sa.Column('points_earned', sa.Integer(), nullable=False),
        sa.Column('response_time', sa.Integer(), nullable=False),
        sa.Column('client_time', sa.BigInteger(), nullable=True),
        sa.Column('answered_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['player_session_id'], ['player_session.id']),
        sa.ForeignKeyConstraint(['question_id'], ['question.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('player_session_id', 'question_id', name='uq_player_answer_question'),
    )
    op.create_index('ix_player_answer_player_session_id', 'player_answer', ['player_session_id'])
    op.create_index('ix_player_answer_question_id', 'player_answer', ['question_id'])


def downgrade():
    op.drop_table('player_answer')
    op.drop_table('player_session')
    op.drop_index('uq_game_session_open_pin', table_name='game_session')
    op.drop_table('game_session')
    op.drop_table('question')
    op.drop_table('quiz')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_table('user')
