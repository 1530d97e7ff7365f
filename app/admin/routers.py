import os
import hmac
import logging
from dotenv import load_dotenv

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from app.core.supabase_client import get_supabase
from app.core.dependencies import SessionContext, get_session

from .schemas import AdminKeyModel, AdminModeResponseModel


load_dotenv()
logger = logging.getLogger(__name__)
router = APIRouter()


def admin_key_matches(candidate: str) -> bool:
    expected = os.getenv("ADMIN_KEY")
    if not expected:
        return False
    return hmac.compare_digest(candidate.encode(), expected.encode())


def set_admin_role(db: Client, user_id: str, is_admin: bool):
    # app_metadata is only writable with the service role key
    db.auth.admin.update_user_by_id(user_id, {"app_metadata": {"is_admin": is_admin}})


@router.get("/mode", response_model=AdminModeResponseModel, status_code=200)
def get_admin_mode(session: SessionContext = Depends(get_session)):
    """Whether the current token carries admin rights."""
    return {"is_admin": session.is_admin}


@router.post("/mode", response_model=AdminModeResponseModel, status_code=200)
def enter_admin_mode(
    data: AdminKeyModel,
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
):
    """
    Grant the current user admin rights using the shared admin key.

    Admins may edit and delete any listing. The flag is stored in the user's
    `app_metadata`, so it survives sign-out. It takes effect once the client
    fetches a new access token (`GET /auth/access`).

    **Errors**
    - 403: Invalid admin key (nothing is written)
    - 500: Failed to update the user
    """
    if not admin_key_matches(data.key.get_secret_value()):
        logger.warning(f"admin_key_rejected user_id={session.user_id}")
        raise HTTPException(status_code=403, detail="Invalid admin key")

    try:
        set_admin_role(db, session.user_id, True)
    except Exception:
        logger.exception(f"admin_role_set_failed user_id={session.user_id}")
        raise HTTPException(status_code=500, detail="Failed to set admin role")

    logger.info(f"admin_mode_entered user_id={session.user_id}")
    return {"is_admin": True, "refresh_required": not session.is_admin}


@router.delete("/mode", response_model=AdminModeResponseModel, status_code=200)
def exit_admin_mode(
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
):
    """Drop admin rights for the current user."""
    try:
        set_admin_role(db, session.user_id, False)
    except Exception:
        logger.exception(f"admin_role_clear_failed user_id={session.user_id}")
        raise HTTPException(status_code=500, detail="Failed to clear admin role")

    logger.info(f"admin_mode_exited user_id={session.user_id}")
    return {"is_admin": False, "refresh_required": session.is_admin}
