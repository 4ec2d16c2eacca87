# CRUD operations package

from .entity import entity_crud
from .version import version_crud
from .version_comment import version_comment_crud
from .retention_audit import retention_audit_crud

__all__ = [
    'entity_crud',
    'version_crud',
    'version_comment_crud',
    'retention_audit_crud'
]
