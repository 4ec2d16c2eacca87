"""Add versioned entity, version, comment and retention audit tables

Revision ID: b7c8d9e0f1a2
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'b7c8d9e0f1a2'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_document = sa.JSON(none_as_null=True)
storage_state = sa.Enum('active', 'archived', 'compressed', name='storagestate')
retention_action = sa.Enum('purge', 'rebaseline', 'entity_purge', name='retentionaction')


def upgrade() -> None:
    """Upgrade schema."""
    # Head pointer per case study
    op.create_table('versioned_entities',
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('head_version_number', sa.Integer(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('entity_id')
    )

    op.create_table('entity_versions',
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('snapshot', json_document, nullable=True),
        sa.Column('delta', json_document, nullable=True),
        sa.Column('delta_parent', sa.Integer(), nullable=True),
        sa.Column('baseline_ref', sa.Integer(), nullable=True),
        sa.Column('author_id', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('change_summary', json_document, nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('storage_state', storage_state, nullable=False),
        sa.Column('content_hash', sa.String(length=64), nullable=False),
        sa.Column('commit_token', sa.String(length=64), nullable=False),
        sa.Column('reverted_from', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['entity_id'], ['versioned_entities.entity_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('entity_id', 'version_number')
    )
    op.create_index(op.f('ix_entity_versions_author_id'), 'entity_versions', ['author_id'], unique=False)
    op.create_index('ix_entity_versions_commit_token', 'entity_versions', ['entity_id', 'commit_token'], unique=False)
    op.create_index('ix_entity_versions_state', 'entity_versions', ['entity_id', 'storage_state'], unique=False)

    op.create_table('version_comments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.String(length=255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['entity_id', 'version_number'],
            ['entity_versions.entity_id', 'entity_versions.version_number'],
            ondelete='CASCADE'
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_version_comments_entity_id'), 'version_comments', ['entity_id'], unique=False)

    # Audit rows are kept after the entity they describe is purged, so no FK
    op.create_table('retention_audit_log',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=True),
        sa.Column('action', retention_action, nullable=False),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_retention_audit_log_entity_id'), 'retention_audit_log', ['entity_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_retention_audit_log_entity_id'), table_name='retention_audit_log')
    op.drop_table('retention_audit_log')
    op.drop_index(op.f('ix_version_comments_entity_id'), table_name='version_comments')
    op.drop_table('version_comments')
    op.drop_index('ix_entity_versions_state', table_name='entity_versions')
    op.drop_index('ix_entity_versions_commit_token', table_name='entity_versions')
    op.drop_index(op.f('ix_entity_versions_author_id'), table_name='entity_versions')
    op.drop_table('entity_versions')
    op.drop_table('versioned_entities')

    storage_state.drop(op.get_bind(), checkfirst=True)
    retention_action.drop(op.get_bind(), checkfirst=True)
