"""initial kirin schema

Revision ID: 0001_initial
Revises:
Create Date: 2024-11-28
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'collectors',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('display_name', sa.String(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('schedule_pattern', sa.String(), nullable=True),
        sa.Column('concurrency', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('rate_limit_max', sa.Integer(), nullable=True),
        sa.Column('rate_limit_ms', sa.Integer(), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'pipeline_jobs',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('stage', sa.String(), nullable=False),
        sa.Column('collector_id', sa.Integer(), sa.ForeignKey('collectors.id'), nullable=True),
        sa.Column('task_id', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=False, server_default='PENDING'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('idx_pipeline_jobs_stage_status', 'pipeline_jobs', ['stage', 'status'])

    op.create_table(
        'processor_configs',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(), nullable=False, unique=True),
        sa.Column('model', sa.String(), nullable=True),
        sa.Column('base_url', sa.String(), nullable=True),
        sa.Column('temperature', sa.Float(), nullable=True),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('concurrency', sa.Integer(), nullable=False, server_default='2'),
        sa.Column('batch_size', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('system_prompt', sa.Text(), nullable=True),
        sa.Column('source_prompts', sa.JSON(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        'user_profiles',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('username', sa.String(), nullable=False, unique=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )

    op.create_table(
        'interests',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('keyword', sa.String(), nullable=False),
        sa.Column('weight', sa.Float(), nullable=False, server_default='1.0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.UniqueConstraint('user_id', 'keyword', name='uq_interests_user_keyword'),
    )

    op.create_table(
        'summaries',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('source', sa.String(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('raw_messages', sa.JSON(), nullable=True),
        sa.Column('message_ids', sa.JSON(), nullable=False),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('topics', sa.JSON(), nullable=False),
        sa.Column('relevance_score', sa.Float(), nullable=True),
        sa.Column('model_name', sa.String(), nullable=True),
        sa.Column('generated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
    )
    op.create_index('idx_summaries_source_generated_at', 'summaries', ['source', 'generated_at'])


def downgrade() -> None:
    op.drop_index('idx_summaries_source_generated_at', table_name='summaries')
    op.drop_table('summaries')
    op.drop_table('interests')
    op.drop_table('user_profiles')
    op.drop_table('processor_configs')
    op.drop_index('idx_pipeline_jobs_stage_status', table_name='pipeline_jobs')
    op.drop_table('pipeline_jobs')
    op.drop_table('collectors')
