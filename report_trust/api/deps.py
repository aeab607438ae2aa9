"""
Dependencies for authentication, database sessions, background jobs and common validations.
"""
from typing import Any, Generator, List, Optional
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from report_trust.database import SessionLocal
from report_trust.models.db import User
from report_trust.models.db.enums import UserRole
from report_trust.utils import get_logger

logger = get_logger(__name__)
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency.
    Ensures proper session lifecycle management with automatic cleanup.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
    except Exception as e:
        logger.error("Database session error", error=str(e), exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()


def _key_prefix(api_key: str) -> str:
    return api_key[:10] + "..." if len(api_key) > 10 else api_key


def _lookup_user(db: Session, api_key: str) -> Optional[User]:
    return db.query(User).filter(
        User.api_key == api_key,
        User.is_active == True  # noqa: E712
    ).first()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Resolve the acting user from the Bearer API key.

    Session issuance is external; this engine only needs a stable user id and
    role per request.

    Raises:
        HTTPException: 401 if the API key is unknown or the user inactive
    """
    api_key = credentials.credentials
    user = _lookup_user(db, api_key)

    if not user:
        logger.warning(
            "Authentication failed: invalid or inactive API key",
            api_key_prefix=_key_prefix(api_key)
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or inactive API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    logger.debug(
        "User authenticated",
        user_id=user.id,
        user_role=user.role.value
    )
    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Anonymous callers are allowed (e.g. report submission); a bad key is still rejected."""
    if credentials is None:
        return None
    return get_current_user(credentials, db)


def require_role(allowed_roles: List[UserRole]):
    """
    Factory function to create a dependency that requires specific user roles.

    Args:
        allowed_roles: List of allowed user roles

    Returns:
        Dependency function that validates user role
    """
    def role_dependency(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in allowed_roles:
            logger.warning(
                "Access denied: insufficient role",
                user_id=current_user.id,
                user_role=current_user.role.value,
                required_roles=[role.value for role in allowed_roles]
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return current_user

    return role_dependency


require_admin = require_role([UserRole.ADMIN])


def get_job_queue(request: Request) -> Any:
    """Background job queue created at startup (None when not running)."""
    return getattr(request.app.state, "queue", None)


def get_pagination_params(
    limit: int = 50,
    offset: int = 0
) -> dict:
    """
    Validate and return pagination parameters.

    Args:
        limit: Maximum number of items to return (1-500)
        offset: Number of items to skip (>= 0)

    Raises:
        HTTPException: If parameters are invalid
    """
    if limit < 1 or limit > 500:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Limit must be between 1 and 500"
        )

    if offset < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Offset must be >= 0"
        )

    return {"limit": limit, "offset": offset}
