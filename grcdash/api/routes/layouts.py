"""Dashboard layout routes: per-user layout resolution and saving."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from ...auth.capabilities import PERM_VIEW_DASHBOARD, Viewer
from ...auth.rbac import require_permission
from ...dependencies import get_layout_store
from ...engine.layout_config import LayoutConfig, ResolvedLayout
from ...engine.layout_editor import LayoutEditor
from ...engine.layout_store import LayoutStore

router = APIRouter(prefix="/layouts", tags=["layouts"])


# --- Response bodies ---

class LayoutResponse(BaseModel):
    user_id: str
    role: str
    layout: LayoutConfig
    visible_order: list[str]


# --- Helpers ---

def _response(user_id: str, role: str, resolved: ResolvedLayout) -> LayoutResponse:
    return LayoutResponse(
        user_id=user_id,
        role=role,
        layout=resolved.as_config(),
        visible_order=resolved.visible_order,
    )


# --- Endpoints ---

@router.get("/me", response_model=LayoutResponse)
async def get_my_layout(
    store: LayoutStore = Depends(get_layout_store),
    viewer: Viewer = Depends(require_permission(PERM_VIEW_DASHBOARD)),
):
    """Effective layout for the caller; defaults when nothing is saved."""
    editor = LayoutEditor(store, viewer)
    resolved = await editor.load_effective()
    return _response(viewer.user_id, viewer.role, resolved)


@router.get("/{user_id}", response_model=LayoutResponse)
async def get_user_layout(
    user_id: str,
    role: Optional[str] = Query(default=None, description="Role defaults to apply if the user never saved"),
    store: LayoutStore = Depends(get_layout_store),
    viewer: Viewer = Depends(require_permission(PERM_VIEW_DASHBOARD)),
):
    """A user's resolved layout. Administrators may read anyone's."""
    editor = LayoutEditor(store, viewer)
    resolved = await editor.begin_edit(user_id, target_role=role)
    target_role = editor.target_role
    editor.cancel_edit()
    return _response(user_id, target_role, resolved)


@router.put("/{user_id}", response_model=LayoutResponse)
async def save_user_layout(
    user_id: str,
    body: LayoutConfig,
    role: Optional[str] = Query(default=None, description="Role of the target user"),
    store: LayoutStore = Depends(get_layout_store),
    viewer: Viewer = Depends(require_permission(PERM_VIEW_DASHBOARD)),
):
    """Replace a user's whole layout. Only administrators may set pins."""
    editor = LayoutEditor(store, viewer)
    target_role = role if user_id != viewer.user_id and role else viewer.role
    resolved = await editor.replace(user_id, body, target_role=role)
    return _response(user_id, target_role, resolved)


@router.post("/{user_id}/copy", response_model=LayoutResponse)
async def copy_layout(
    user_id: str,
    source: str = Query(..., description="User whose stored layout seeds the buffer"),
    confirm: bool = Query(default=False),
    role: Optional[str] = Query(default=None, description="Role of the target user"),
    store: LayoutStore = Depends(get_layout_store),
    viewer: Viewer = Depends(require_permission(PERM_VIEW_DASHBOARD)),
):
    """Preview ``user_id``'s edit buffer reseeded from ``source``. Writes nothing."""
    editor = LayoutEditor(store, viewer)
    await editor.begin_edit(user_id, target_role=role)
    resolved = await editor.copy_from(source, confirmed=confirm)
    target_role = editor.target_role
    editor.cancel_edit()
    return _response(user_id, target_role, resolved)
