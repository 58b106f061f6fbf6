"""User settings and exchange credentials API."""

from fastapi import APIRouter, Depends

from autotrader.engine.components import Components
from autotrader.engine.errors import NotFoundError
from autotrader.engine.user_settings import (
    get_user_settings,
    has_credentials,
    remove_credentials,
    save_credentials,
    update_user_settings,
)
from autotrader.schemas.credential import CredentialRead, CredentialUpdate
from autotrader.schemas.settings import UserSettingsRead, UserSettingsUpdate
from autotrader.api.deps import components, get_current_user_id

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("", response_model=UserSettingsRead)
def read_settings(user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    return get_user_settings(c.engine, user_id)


@router.patch("", response_model=UserSettingsRead)
def patch_settings(
    data: UserSettingsUpdate,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    return update_user_settings(c.engine, user_id, **data.model_dump(exclude_unset=True, exclude_none=True))


@router.put("/credentials", response_model=CredentialRead)
def put_credentials(
    data: CredentialUpdate,
    user_id: int = Depends(get_current_user_id),
    c: Components = Depends(components),
):
    """Store Indodax keys (encrypted). They are never returned."""
    return save_credentials(c.engine, user_id, data.api_key, data.secret_key)


@router.get("/credentials/status")
def credentials_status(user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    return {"configured": has_credentials(c.engine, user_id)}


@router.delete("/credentials")
def delete_credentials(user_id: int = Depends(get_current_user_id), c: Components = Depends(components)):
    if not remove_credentials(c.engine, user_id):
        raise NotFoundError(f"No exchange keys stored for user {user_id}")
    return {"message": "Exchange keys removed"}
