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


def upgrade():
    # Create assessments table
    op.create_table(
        'assessments',
        sa.Column('assessment_id', sa.String(36), nullable=False),
        sa.Column('course_id', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('questions', sa.Text(), nullable=False),
        sa.Column('max_score', sa.Integer(), nullable=False),
        sa.Column('time_limit_seconds', sa.Float(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('assessment_id', name='pk_assessments')
    )
    op.create_index('idx_assessments_course_id', 'assessments', ['course_id'])

    # Create results table; results must never outlive their assessment
    op.create_table(
        'results',
        sa.Column('result_id', sa.String(36), nullable=False),
        sa.Column('assessment_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False),
        sa.Column('attempt_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('answers', sa.Text(), nullable=False),
        sa.Column('time_taken_seconds', sa.Float(), nullable=True),
        sa.PrimaryKeyConstraint('result_id', name='pk_results'),
        sa.ForeignKeyConstraint(
            ['assessment_id'], ['assessments.assessment_id'],
            name='fk_results_assessment_id_assessments',
            ondelete='RESTRICT'
        )
    )
    op.create_index('idx_results_assessment_id', 'results', ['assessment_id'])
    op.create_index('idx_results_user_id_attempt_date', 'results', ['user_id', 'attempt_date'])


def downgrade():
    op.drop_index('idx_results_user_id_attempt_date', table_name='results')
    op.drop_index('idx_results_assessment_id', table_name='results')
    op.drop_table('results')
    op.drop_index('idx_assessments_course_id', table_name='assessments')
    op.drop_table('assessments')
