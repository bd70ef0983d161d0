"""FastAPI dependency injection providers."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from .auth.capabilities import ALL_ROLES, Viewer
from .config import GrcDashConfig, get_config
from .database import get_session_factory
from .engine.dashboard import DashboardSettings
from .engine.layout_store import LayoutStore, SqlLayoutStore
from .utils.logging import bind_viewer, get_logger

_dep_logger = get_logger("dependencies")

_config_instance: GrcDashConfig | None = None
_layout_store: LayoutStore | None = None


def get_app_config() -> GrcDashConfig:
    """Get the application config singleton."""
    global _config_instance
    if _config_instance is None:
        _config_instance = get_config()
    return _config_instance


def get_layout_store(config: GrcDashConfig = Depends(get_app_config)) -> LayoutStore:
    """Get the layout store singleton, backed by the configured database."""
    global _layout_store
    if _layout_store is None:
        _layout_store = SqlLayoutStore(get_session_factory(config))
    return _layout_store


def get_dashboard_settings(config: GrcDashConfig = Depends(get_app_config)) -> DashboardSettings:
    return DashboardSettings.from_config(config)


async def get_current_viewer(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Viewer:
    """Identity is established upstream and forwarded in request headers."""
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id or X-User-Role header",
        )
    if x_user_role not in ALL_ROLES:
        _dep_logger.info("unknown_role", user_id=x_user_id, role=x_user_role)
    bind_viewer(x_user_id, x_user_role)
    return Viewer.for_role(x_user_id, x_user_role)
