"""
Authentication dependencies for the EduSync assessment service.

This module provides FastAPI dependencies that resolve the calling principal.
Credentials are issued and validated upstream; the bearer token that reaches
this service is taken as the user ID and the role is read from the
``X-User-Role`` header.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

logger = logging.getLogger(__name__)


class Role(enum.Enum):
    """Roles known to the assessment service."""
    STUDENT = "student"
    INSTRUCTOR = "instructor"


@dataclass(frozen=True)
class Principal:
    """The authenticated caller of a request."""
    user_id: str
    role: Role = Role.STUDENT

    @property
    def is_instructor(self) -> bool:
        return self.role is Role.INSTRUCTOR


async def get_current_principal(
    authorization: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None)
) -> Principal:
    """
    Get the current principal from the request headers.

    Args:
        authorization: Authorization header value ("Bearer <user id>")
        x_user_role: Role header value, "student" when absent

    Returns:
        The calling principal

    Raises:
        HTTPException: If the headers are missing or malformed
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format"
        )

    if scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme"
        )

    try:
        role = Role((x_user_role or Role.STUDENT.value).lower())
    except ValueError:
        logger.warning(f"Rejected unknown role header: {x_user_role}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {x_user_role}"
        )

    return Principal(user_id=token, role=role)


async def require_instructor(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Dependency that only admits instructors."""
    if not principal.is_instructor:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Instructor role required"
        )
    return principal
