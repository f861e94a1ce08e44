"""
Authentication for the Catalog Pilot API.

Requests identify the signed-in user with either:
1. A Bearer JWT (sub = user id, email) signed with JWT_SECRET_KEY
2. x-user-id / x-user-email headers, only when TRUST_IDENTITY_HEADERS is set
   (local development)

The user is provisioned with a trial company on first sight.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.config import settings
from catalog_pilot.database import get_db
from catalog_pilot.models import User
from catalog_pilot.services.tenant_service import TenantService

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Identity:
    user_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    profile_image_url: Optional[str] = None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> Identity:
    """Resolve the caller's identity from the request."""
    if credentials:
        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise _unauthorized("Token has expired")
        except jwt.InvalidTokenError:
            raise _unauthorized("Invalid token")

        user_id = payload.get("sub") or payload.get("user_id")
        if not user_id:
            raise _unauthorized("Token has no subject")

        return Identity(
            user_id=str(user_id),
            email=payload.get("email"),
            first_name=payload.get("given_name"),
            last_name=payload.get("family_name"),
            profile_image_url=payload.get("picture"),
        )

    if settings.trust_identity_headers and x_user_id:
        return Identity(user_id=x_user_id, email=x_user_email)

    raise _unauthorized("Authentication required")


async def get_authenticated_user(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Require an authenticated user, active or not.

    Returns:
        User: The caller, provisioned on first request
    """
    return await TenantService(db).ensure_user(
        identity.user_id,
        identity.email,
        first_name=identity.first_name,
        last_name=identity.last_name,
        profile_image_url=identity.profile_image_url,
    )


async def get_current_user(user: User = Depends(get_authenticated_user)) -> User:
    """Require an authenticated user that is an active company member."""
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not an active member of a company",
        )
    return user


async def require_team_manager(user: User = Depends(get_current_user)) -> User:
    """Require an owner or admin of the caller's company."""
    if not user.can_manage_team:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only owners and admins can manage the team",
        )
    return user
