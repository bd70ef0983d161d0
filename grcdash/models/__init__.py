"""SQLAlchemy models package."""

from .base import Base
from .dashboard_layout import DashboardLayout

__all__ = [
    "Base",
    "DashboardLayout",
]
