"""Initial database schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _definition_columns():
    return [
        sa.Column('family', sa.String(32), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('subject_id', sa.Integer(), nullable=True),
        sa.Column('subject_name', sa.String(255), nullable=True),
        sa.Column('subject_code', sa.String(64), nullable=True),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('duration_unit', sa.String(16), nullable=False),
        sa.Column('passing_score_percent', sa.Float(), nullable=False),
        sa.Column('assigned_taker_id', sa.Integer(), nullable=True),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
    ]


def _question_columns():
    return [
        sa.Column('order_index', sa.Integer(), nullable=False),
        sa.Column('question_type', sa.String(32), nullable=False),
        sa.Column('prompt_text', sa.Text(), nullable=False),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('correct_answer', sa.Text(), nullable=True),
        sa.Column('model_answer', sa.Text(), nullable=True),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False),
    ]


def _definition_indexes(table):
    for column in ('family', 'subject_id', 'assigned_taker_id', 'status'):
        op.create_index(f'ix_{table}_{column}', table, [column])


def upgrade():
    # Create staging_assessments table
    op.create_table(
        'staging_assessments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        *_definition_columns(),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('reviewed_by', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('review_reason', sa.Text(), nullable=True),
        sa.Column('live_assessment_id', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_staging_assessments'),
    )
    _definition_indexes('staging_assessments')
    op.create_index('idx_staging_status_created', 'staging_assessments', ['status', 'created_at'])

    # Create staging_questions table
    op.create_table(
        'staging_questions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        *_question_columns(),
        sa.Column('staging_assessment_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ['staging_assessment_id'], ['staging_assessments.id'],
            name='fk_staging_questions_staging_assessment_id_staging_assessments',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_staging_questions'),
        sa.UniqueConstraint('staging_assessment_id', 'order_index', name='uq_staging_questions_order'),
    )
    op.create_index('ix_staging_questions_staging_assessment_id', 'staging_questions',
                    ['staging_assessment_id'])

    # Create live_assessments table
    op.create_table(
        'live_assessments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        *_definition_columns(),
        sa.Column('source_staging_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('promoted_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['source_staging_id'], ['staging_assessments.id'],
            name='fk_live_assessments_source_staging_id_staging_assessments',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_live_assessments'),
        sa.UniqueConstraint('source_staging_id', name='uq_live_assessments_source_staging_id'),
    )
    _definition_indexes('live_assessments')

    # Create live_questions table
    op.create_table(
        'live_questions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        *_question_columns(),
        sa.Column('live_assessment_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ['live_assessment_id'], ['live_assessments.id'],
            name='fk_live_questions_live_assessment_id_live_assessments',
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_live_questions'),
        sa.UniqueConstraint('live_assessment_id', 'order_index', name='uq_live_questions_order'),
    )
    op.create_index('ix_live_questions_live_assessment_id', 'live_questions', ['live_assessment_id'])

    # Create assessment_results table
    op.create_table(
        'assessment_results',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('attempt_id', sa.String(36), nullable=False),
        sa.Column('taker_id', sa.Integer(), nullable=False),
        sa.Column('assessment_id', sa.Integer(), nullable=False),
        sa.Column('family', sa.String(32), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('total_points', sa.Integer(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=False),
        sa.Column('correct_answers', sa.Integer(), nullable=False),
        sa.Column('total_questions', sa.Integer(), nullable=False),
        sa.Column('time_taken_seconds', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=False),
        sa.Column('answers_snapshot', sa.JSON(), nullable=False),
        sa.Column('passed', sa.Boolean(), nullable=False),
        sa.Column('pending_manual_review', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ['assessment_id'], ['live_assessments.id'],
            name='fk_assessment_results_assessment_id_live_assessments',
        ),
        sa.PrimaryKeyConstraint('id', name='pk_assessment_results'),
        sa.UniqueConstraint('attempt_id', name='uq_assessment_results_attempt_id'),
    )
    op.create_index('ix_assessment_results_taker_id', 'assessment_results', ['taker_id'])
    op.create_index('ix_assessment_results_assessment_id', 'assessment_results', ['assessment_id'])
    op.create_index('idx_results_assessment_percentage', 'assessment_results',
                    ['assessment_id', 'percentage'])
    op.create_index('idx_results_taker_completed', 'assessment_results',
                    ['taker_id', 'completed_at'])


def downgrade():
    op.drop_table('assessment_results')
    op.drop_table('live_questions')
    op.drop_table('live_assessments')
    op.drop_table('staging_questions')
    op.drop_table('staging_assessments')
