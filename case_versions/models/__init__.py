# Database models package

from .base import Base
from .entity import VersionedEntity
from .version import EntityVersion, StorageState
from .version_comment import VersionComment
from .retention_audit import RetentionAuditEntry, RetentionAction

__all__ = [
    'Base',
    'VersionedEntity',
    'EntityVersion',
    'StorageState',
    'VersionComment',
    'RetentionAuditEntry',
    'RetentionAction'
]
