from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from case_versions.schemas.auth import TokenData
from case_versions.core.config import settings

security = HTTPBearer()


async def get_current_author(credentials: HTTPAuthorizationCredentials = Depends(security)) -> TokenData:
    """Resolve the caller from the identity provider's bearer token.

    The engine trusts the `sub` claim as the author id; it does no further
    identity checks of its own.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = jwt.decode(
            credentials.credentials,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"verify_aud": False},
        )
    except JWTError:
        raise credentials_exception

    author_id = payload.get("sub")
    if not author_id:
        raise credentials_exception

    return TokenData(author_id=str(author_id), email=payload.get("email"))
