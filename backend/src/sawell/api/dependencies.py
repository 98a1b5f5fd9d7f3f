"""FastAPI dependencies for request identity and shared services.

This module provides reusable FastAPI dependencies for:
- Caller identity (set by the auth gateway)
- Settings, UnitOfWork factory and the shared VideoReconciler
"""

from typing import Annotated, Callable

from fastapi import Header, HTTPException, Request, status

from sawell.core.config import Settings
from sawell.services.reconciliation import VideoReconciler
from sawell.uow import UnitOfWork


def get_settings(request: Request) -> Settings:
    """Get the settings instance loaded at startup."""
    return request.app.state.settings


def get_uow_factory(request: Request) -> Callable[[], UnitOfWork]:
    """Get UnitOfWork factory from app state.

    Example:
        >>> @router.get("/endpoint")
        >>> async def endpoint(uow_factory=Depends(get_uow_factory)):
        ...     async with await uow_factory() as uow:
        ...         await uow.users.get_by_uid(uid)
    """
    return request.app.state.uow_factory


def get_reconciler(request: Request) -> VideoReconciler:
    """Get the process-wide VideoReconciler from app state."""
    return request.app.state.reconciler


async def get_current_uid(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Resolve the caller's uid.

    Token verification happens in the auth gateway in front of this service,
    which forwards the verified uid in the X-User-Id header.

    Raises:
        HTTPException: 401 Unauthorized if no identity was forwarded
    """
    uid = (x_user_id or "").strip()
    if not uid:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="login required")
    return uid
