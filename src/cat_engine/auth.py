"""Caller identity resolution.

Authentication happens upstream: the gateway forwards the caller's stable
user id and role list as request headers (names configurable through
Settings). This module turns those headers into a CallerIdentity, registering
the user on first sight and merging in stored roles such as deny_access.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cat_engine.adapters.repositories import AuditTrailRepository, UserRepository
from cat_engine.core.access import CallerIdentity
from cat_engine.core.services import AuditService, UserService
from cat_engine.database import get_db_session
from cat_engine.errors import AuthenticationError
from cat_engine.settings import Settings, get_settings


def get_user_service(
    session: Annotated[AsyncSession, Depends(get_db_session)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> UserService:
    """Construct UserService with injected repositories.

    Args:
        session: Request-scoped DB session.
        settings: Service settings.

    Returns:
        Fully wired UserService instance.
    """
    timeout = settings.store_timeout_seconds
    audit_service = AuditService(AuditTrailRepository(session, timeout), max_page_size=settings.audit_max_page_size)
    return UserService(
        user_repo=UserRepository(session, timeout),
        audit_service=audit_service,
        max_page_size=settings.users_max_page_size,
        admin_role=settings.admin_role,
    )


def parse_roles(header_value: str | None) -> frozenset[str]:
    """Split a comma separated role header, dropping blanks."""
    if not header_value:
        return frozenset()
    return frozenset(role.strip() for role in header_value.split(",") if role.strip())


async def get_current_user(
    request: Request,
    user_service: Annotated[UserService, Depends(get_user_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> CallerIdentity:
    """Resolve the caller of the current request.

    Raises:
        AuthenticationError: If the user id header is missing or blank.
    """
    user_id = (request.headers.get(settings.user_id_header) or "").strip()
    if not user_id:
        raise AuthenticationError("Authentication is required to access this resource.")
    roles = parse_roles(request.headers.get(settings.user_roles_header))
    return await user_service.resolve_identity(user_id, roles)
