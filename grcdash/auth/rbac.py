"""Role-Based Access Control dependencies."""

from fastapi import Depends, HTTPException, status

from ..dependencies import get_current_viewer
from ..utils.logging import get_logger
from .capabilities import Viewer

logger = get_logger("auth.rbac")


def require_permission(*required_perms: str):
    """FastAPI dependency factory that checks the viewer holds every permission."""
    async def _check(viewer: Viewer = Depends(get_current_viewer)) -> Viewer:
        for perm in required_perms:
            if not viewer.can(perm):
                logger.info("permission_denied", user_id=viewer.user_id, role=viewer.role, permission=perm)
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission required: {perm}",
                )
        return viewer

    return _check
