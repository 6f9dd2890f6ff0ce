"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create quizzes table
    op.create_table(
        'quizzes',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=False, server_default='General Security'),
        sa.Column('difficulty', sa.String(50), nullable=False, server_default='beginner'),
        sa.Column('time_limit', sa.Integer(), nullable=True, server_default='30'),
        sa.Column('passing_score', sa.Integer(), nullable=False, server_default='70'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now())
    )
    op.create_index('ix_quizzes_is_active', 'quizzes', ['is_active'])

    # Create quiz_questions table
    op.create_table(
        'quiz_questions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('quiz_id', sa.Integer(), sa.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(50), nullable=False, server_default='multiple_choice'),
        sa.Column('points', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('explanation', sa.Text(), nullable=True)
    )
    op.create_index('ix_quiz_questions_quiz_id', 'quiz_questions', ['quiz_id'])

    # Create quiz_answer_options table
    op.create_table(
        'quiz_answer_options',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('question_id', sa.Integer(), sa.ForeignKey('quiz_questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('order_index', sa.Integer(), nullable=False, server_default='0')
    )
    op.create_index('ix_quiz_answer_options_question_id', 'quiz_answer_options', ['question_id'])

    # Create mini_games table
    op.create_table(
        'mini_games',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('game_type', sa.String(50), nullable=False, server_default='phishing_simulator'),
        sa.Column('difficulty', sa.String(50), nullable=False, server_default='beginner'),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('game_data', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now())
    )
    op.create_index('ix_mini_games_is_active', 'mini_games', ['is_active'])

    # Create attempts table; open_slot is TRUE while open and NULL afterwards,
    # so the unique constraint only ever sees one open attempt per user and assessment
    op.create_table(
        'attempts',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('assessment_kind', sa.String(20), nullable=False),
        sa.Column('assessment_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='open'),
        sa.Column('open_slot', sa.Boolean(), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('max_score', sa.Integer(), nullable=True),
        sa.Column('passed', sa.Boolean(), nullable=True),
        sa.Column('time_taken', sa.Integer(), nullable=True),
        sa.Column('answers', sa.Text(), nullable=True),
        sa.Column('self_reported', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint('user_id', 'assessment_kind', 'assessment_id', 'open_slot', name='uq_attempts_open_slot'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_attempts_status', 'attempts', ['status'])
    op.create_index('idx_attempts_user_assessment', 'attempts', ['user_id', 'assessment_kind', 'assessment_id'])
    op.create_index('idx_attempts_assessment_status', 'attempts', ['assessment_kind', 'assessment_id', 'status'])

    # Create training_modules table
    op.create_table(
        'training_modules',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(100), nullable=False, server_default='General Security'),
        sa.Column('content_type', sa.String(50), nullable=False, server_default='interactive'),
        sa.Column('content_url', sa.String(500), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('prerequisites', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now())
    )
    op.create_index('ix_training_modules_is_active', 'training_modules', ['is_active'])

    # Create training_progress table
    op.create_table(
        'training_progress',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('module_id', sa.Integer(), sa.ForeignKey('training_modules.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='not_started'),
        sa.Column('progress_percentage', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('time_spent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'module_id', name='uq_training_progress_user_module')
    )
    op.create_index('ix_training_progress_module_id', 'training_progress', ['module_id'])
    op.create_index('idx_training_progress_user_updated', 'training_progress', ['user_id', 'updated_at'])


def downgrade():
    op.drop_table('training_progress')
    op.drop_table('training_modules')
    op.drop_table('attempts')
    op.drop_table('mini_games')
    op.drop_table('quiz_answer_options')
    op.drop_table('quiz_questions')
    op.drop_table('quizzes')
