"""add crash analytics tables

Revision ID: crash_analytics_001
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'crash_analytics_001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Projects
    op.create_table(
        'crash_projects',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('org_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=50), nullable=False),
        sa.Column('platform', sa.String(length=20), nullable=False, server_default=sa.text("'javascript'")),
        sa.Column('fingerprint_rules', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('issue_counter', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('org_id', 'slug', name='uq_crash_projects_org_slug'),
    )
    op.create_index('ix_crash_projects_org_id', 'crash_projects', ['org_id'])

    # Issues: one row per (project, fingerprint)
    op.create_table(
        'crash_issues',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('org_id', sa.String(length=36), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('short_id', sa.String(length=64), nullable=False),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('culprit', sa.Text(), nullable=True),
        sa.Column('metadata', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('status', sa.String(length=20), nullable=False, server_default=sa.text("'unresolved'")),
        sa.Column('level', sa.String(length=20), nullable=False, server_default=sa.text("'error'")),
        sa.Column('priority', sa.String(length=20), nullable=False, server_default=sa.text("'medium'")),
        sa.Column('event_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('user_count', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('first_seen', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolved_by', sa.String(length=200), nullable=True),
        sa.Column('resolved_in_release', sa.String(length=200), nullable=True),
        sa.Column('times_regressed', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('last_regressed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('regressed_in_release', sa.String(length=200), nullable=True),
        sa.Column('assigned_to', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['crash_projects.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('project_id', 'fingerprint', name='uq_crash_issues_project_fingerprint'),
    )
    op.create_index('idx_crash_issues_project_status', 'crash_issues', ['project_id', 'status'])
    op.create_index('idx_crash_issues_project_last_seen', 'crash_issues', ['project_id', 'last_seen'])
    op.create_index('idx_crash_issues_short_id', 'crash_issues', ['project_id', 'short_id'])

    # Persons seen per issue (user_count)
    op.create_table(
        'crash_issue_persons',
        sa.Column('issue_id', sa.String(length=36), nullable=False),
        sa.Column('person_key', sa.String(length=200), nullable=False),
        sa.Column('first_seen', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('issue_id', 'person_key'),
        sa.ForeignKeyConstraint(['issue_id'], ['crash_issues.id'], ondelete='CASCADE'),
    )

    # Events
    op.create_table(
        'crash_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('org_id', sa.String(length=36), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('issue_id', sa.String(length=36), nullable=True),
        sa.Column('person_id', sa.String(length=200), nullable=True),
        sa.Column('distinct_id', sa.String(length=200), nullable=False),
        sa.Column('exception_type', sa.String(length=256), nullable=False),
        sa.Column('exception_value', sa.Text(), nullable=False),
        sa.Column('stacktrace', postgresql.JSONB(), nullable=False),
        sa.Column('raw_stacktrace', postgresql.JSONB(), nullable=True),
        sa.Column('release', sa.String(length=200), nullable=True),
        sa.Column('dist', sa.String(length=64), nullable=True),
        sa.Column('environment', sa.String(length=64), nullable=False),
        sa.Column('platform', sa.String(length=20), nullable=False),
        sa.Column('server_name', sa.String(length=200), nullable=True),
        sa.Column('tags', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('extra', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('contexts', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('active_flags', postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('breadcrumbs', postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column('fingerprint', sa.String(length=64), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['crash_projects.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['issue_id'], ['crash_issues.id'], ondelete='SET NULL'),
    )
    op.create_index('idx_crash_events_issue_timestamp', 'crash_events', ['issue_id', 'timestamp'])
    op.create_index('idx_crash_events_project_timestamp', 'crash_events', ['project_id', 'timestamp'])
    op.create_index('idx_crash_events_timestamp', 'crash_events', ['timestamp'])

    # Debug artifacts (content stored as BYTEA)
    op.create_table(
        'symbol_artifacts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('org_id', sa.String(length=36), nullable=False),
        sa.Column('project_id', sa.String(length=36), nullable=False),
        sa.Column('release', sa.String(length=200), nullable=False),
        sa.Column('dist', sa.String(length=64), nullable=False, server_default=sa.text("''")),
        sa.Column('name', sa.String(length=1000), nullable=False),
        sa.Column('artifact_type', sa.String(length=20), nullable=False),
        sa.Column('data', sa.LargeBinary(), nullable=False),
        sa.Column('size_bytes', sa.Integer(), nullable=False),
        sa.Column('sha256', sa.String(length=64), nullable=False),
        sa.Column('source_map_url', sa.String(length=1000), nullable=True),
        sa.Column('sources_content', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('uploaded_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('now()')),
        sa.Column('uploaded_by', sa.String(length=200), nullable=True),
        sa.Column('last_accessed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['project_id'], ['crash_projects.id'], ondelete='CASCADE'),
    )
    op.create_index(
        'uq_symbol_artifacts_scope_name', 'symbol_artifacts',
        ['project_id', 'release', 'dist', 'name'], unique=True,
    )
    op.create_index('idx_symbol_artifacts_uploaded_at', 'symbol_artifacts', ['uploaded_at'])
    op.create_index('ix_symbol_artifacts_sha256', 'symbol_artifacts', ['sha256'])


def downgrade() -> None:
    op.drop_table('symbol_artifacts')
    op.drop_table('crash_events')
    op.drop_table('crash_issue_persons')
    op.drop_table('crash_issues')
    op.drop_table('crash_projects')
