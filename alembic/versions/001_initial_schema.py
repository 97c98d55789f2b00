"""Initial schema: users, releases, patches, built versions, action history and Jira.

Revision ID: 001
Revises:
Create Date: 2025-03-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=True)

release_track = postgresql.ENUM('Future', 'Beta', 'Rollout', 'Active', 'Archived', name='release_track', create_type=False)
release_scope = postgresql.ENUM('global', 'version_bound', name='release_scope', create_type=False)
patch_status = postgresql.ENUM('in_development', 'in_deployment', 'active', 'deprecated', name='patch_status', create_type=False)
patch_action = postgresql.ENUM(
    'start_deployment', 'cancel_deployment', 'mark_active', 'revert_to_deployment', 'deprecate', 'reactivate',
    name='patch_action', create_type=False,
)
action_status = postgresql.ENUM('success', 'failed', 'cancelled', name='action_status', create_type=False)
jira_release_status = postgresql.ENUM('Released', 'Unreleased', 'Archived', name='jira_release_status', create_type=False)

ENUMS = (release_track, release_scope, patch_status, patch_action, action_status, jira_release_status)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    ]


def _record_tables(table: str, transitions: str, components: str, fk: str) -> None:
    """Create a versioned record table with its transition and component tables."""
    op.create_table(
        table,
        sa.Column('id', UUID, primary_key=True),
        sa.Column('version_id', UUID, sa.ForeignKey('release_versions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('increment', sa.Integer, nullable=False, server_default='0'),
        sa.Column('current_status', patch_status, nullable=False, server_default='in_development'),
        sa.Column('token_values', postgresql.JSONB, nullable=False, server_default='{}'),
        sa.Column('created_by_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL')),
        *_timestamps(),
        sa.UniqueConstraint('version_id', 'name', name=f'uq_{table}_version_name'),
    )
    op.create_index(f'ix_{table}_version_id', table, ['version_id'])
    op.create_index(f'ix_{table}_created_by_id', table, ['created_by_id'])
    op.create_index(f'ix_{table}_created_at', table, ['created_at'])

    op.create_table(
        transitions,
        sa.Column('id', UUID, primary_key=True),
        sa.Column(fk, UUID, sa.ForeignKey(f'{table}.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', patch_status, nullable=False),
        sa.Column('to_status', patch_status, nullable=False),
        sa.Column('action', patch_action, nullable=False),
        sa.Column('created_by_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index(f'ix_{transitions}_{fk}', transitions, [fk])

    op.create_table(
        components,
        sa.Column('id', UUID, primary_key=True),
        sa.Column(fk, UUID, sa.ForeignKey(f'{table}.id', ondelete='CASCADE'), nullable=False),
        sa.Column('release_component_id', UUID, sa.ForeignKey('release_components.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('increment', sa.Integer, nullable=False, server_default='0'),
        sa.Column('token_values', postgresql.JSONB, nullable=False, server_default='{}'),
        *_timestamps(),
    )
    op.create_index(f'ix_{components}_{fk}', components, [fk])
    op.create_index(f'ix_{components}_release_component_id', components, ['release_component_id'])


def upgrade() -> None:
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    # Users and access tokens
    op.create_table(
        'users',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('name', sa.String(255)),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'personal_access_tokens',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('token_hash', sa.String(255), nullable=False),
        sa.Column('last_used_at', sa.DateTime),
        sa.Column('expires_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
        sa.Column('revoked_at', sa.DateTime),
    )
    op.create_index('ix_personal_access_tokens_user_id', 'personal_access_tokens', ['user_id'])
    op.create_index('ix_personal_access_tokens_token_hash', 'personal_access_tokens', ['token_hash'], unique=True)

    # Releases and components
    op.create_table(
        'release_versions',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('release_track', release_track, nullable=False, server_default='Future'),
        sa.Column('last_used_increment', sa.Integer),
        sa.Column('created_by_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL')),
        *_timestamps(),
    )
    op.create_index('ix_release_versions_created_by_id', 'release_versions', ['created_by_id'])
    op.create_index('ix_release_versions_created_at', 'release_versions', ['created_at'])

    op.create_table(
        'release_components',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('color', sa.String(32), nullable=False),
        sa.Column('naming_pattern', sa.String(255), nullable=False),
        sa.Column('release_scope', release_scope, nullable=False, server_default='version_bound'),
        sa.Column('created_by_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL')),
        *_timestamps(),
    )
    op.create_index('ix_release_components_created_by_id', 'release_components', ['created_by_id'])
    op.create_index('ix_release_components_created_at', 'release_components', ['created_at'])

    # Built versions and patches share one layout
    _record_tables('built_versions', 'built_version_transitions', 'component_versions', 'built_version_id')
    op.create_unique_constraint(
        'uq_component_versions_built_component', 'component_versions', ['built_version_id', 'release_component_id']
    )
    _record_tables('patches', 'patch_transitions', 'patch_component_versions', 'patch_id')
    op.create_unique_constraint(
        'uq_patch_component_versions_patch_component', 'patch_component_versions', ['patch_id', 'release_component_id']
    )

    # Action history
    op.create_table(
        'action_logs',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('action_type', sa.String(100), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('status', action_status, nullable=False, server_default='success'),
        sa.Column('session_token', sa.String(255)),
        sa.Column('workflow_id', sa.String(255)),
        sa.Column('metadata', postgresql.JSONB),
        sa.Column('created_by_id', UUID, sa.ForeignKey('users.id', ondelete='SET NULL')),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_action_logs_created_by_id', 'action_logs', ['created_by_id'])
    op.create_index('ix_action_logs_created_at', 'action_logs', ['created_at'])
    op.create_index('ix_action_logs_session_created', 'action_logs', ['session_token', 'created_at'])

    op.create_table(
        'action_subaction_logs',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('action_id', UUID, sa.ForeignKey('action_logs.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subaction_type', sa.String(100), nullable=False),
        sa.Column('message', sa.Text, nullable=False),
        sa.Column('status', action_status, nullable=False, server_default='success'),
        sa.Column('metadata', postgresql.JSONB),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_action_subaction_logs_action_id', 'action_subaction_logs', ['action_id'])

    # Jira
    op.create_table(
        'jira_credentials',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('user_id', UUID, sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('email', sa.String(255)),
        sa.Column('encrypted_api_token', sa.LargeBinary),
        *_timestamps(),
    )

    op.create_table(
        'jira_versions',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('jira_id', sa.String(64), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('project_id', sa.String(64)),
        sa.Column('release_status', jira_release_status, nullable=False, server_default='Unreleased'),
        sa.Column('released', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('archived', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('start_date', sa.Date),
        sa.Column('release_date', sa.Date),
        sa.Column('raw', postgresql.JSONB),
        *_timestamps(),
    )


def downgrade() -> None:
    # Drop tables
    for table in (
        'jira_versions',
        'jira_credentials',
        'action_subaction_logs',
        'action_logs',
        'patch_component_versions',
        'patch_transitions',
        'patches',
        'component_versions',
        'built_version_transitions',
        'built_versions',
        'release_components',
        'release_versions',
        'personal_access_tokens',
        'users',
    ):
        op.drop_table(table)

    # Drop enums
    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
