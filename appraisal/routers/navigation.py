from fastapi import APIRouter, Depends

from appraisal.core.permissions import NAV_LABELS, ROLE_CAPABILITIES, visible_items
from appraisal.models.user import User
from appraisal.routers.auth_deps import get_current_user

router = APIRouter(prefix="/navigation", tags=["Navigation"])


@router.get("")
def get_navigation(current_user: User = Depends(get_current_user)):
    """Menu entries and capabilities for the caller's role."""
    return {
        "role": current_user.role.value,
        "items": [{"key": item.value, "label": NAV_LABELS[item]} for item in visible_items(current_user.role)],
        "capabilities": sorted(c.value for c in ROLE_CAPABILITIES.get(current_user.role, ())),
    }
