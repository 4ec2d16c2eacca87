from fastapi import HTTPException, status
from functools import wraps
from typing import Callable, Dict, List
from sqlalchemy.exc import SQLAlchemyError


class VersionEngineError(HTTPException):
    """Base class for every error the version engine surfaces"""


class VersionConflict(VersionEngineError):
    """The caller's expected version is stale; reload the head and retry"""
    def __init__(self, current_head: int):
        self.current_head = current_head
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": f"Version conflict: current head is {current_head}",
                "current_head": current_head,
            },
        )


class NotFoundError(VersionEngineError):
    """Custom exception for not found errors"""
    def __init__(self, resource: str = "Resource"):
        self.resource = resource
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"{resource} not found")


class InvalidSnapshot(VersionEngineError):
    """Snapshot violates the structural contract; `errors` lists each offending path"""
    def __init__(self, errors: List[Dict[str, str]]):
        self.errors = errors
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Invalid snapshot", "errors": errors},
        )


class SnapshotDepthExceeded(VersionEngineError):
    def __init__(self, path: str, max_depth: int):
        self.path = path
        self.max_depth = max_depth
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Document nesting exceeds {max_depth} levels at '{path or '<root>'}'",
        )


class RetentionViolation(VersionEngineError):
    def __init__(self, detail: str = "Retention policy violation"):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class StorageFailure(VersionEngineError):
    """Transient persistence-layer error"""
    def __init__(self, detail: str = "Database operation failed"):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)


class OperationCancelled(VersionEngineError):
    def __init__(self, detail: str = "Operation cancelled or timed out"):
        super().__init__(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail=detail)


class ValidationError(HTTPException):
    """Custom exception for request validation errors"""
    def __init__(self, detail: str = "Validation failed"):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def handle_database_errors(func: Callable) -> Callable:
    """Decorator to turn stray database errors into StorageFailure"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except HTTPException:
            raise
        except SQLAlchemyError as e:
            raise StorageFailure(f"Database operation failed: {str(e)}")
    return wrapper
