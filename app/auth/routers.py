import os
import logging
from dotenv import load_dotenv

from fastapi.responses import JSONResponse
from fastapi import APIRouter, status, HTTPException, Request, Response, Depends

from supabase import AuthApiError, Client

from app.core.supabase_client import get_supabase
from app.core.dependencies import SessionContext, get_session
from app.utils.env_helper import env_bool, env_none_or_str
from app.utils.profiles import fetch_profiles

from .schemas import (
    UserRegistrationModel,
    UserRegistrationResponseModel,
    UserLoginModel,
    UserLoginResponseModel,
    AccessTokenResponseModel,
    MeResponseModel,
)


load_dotenv()
logger = logging.getLogger(__name__)
router = APIRouter()

REFRESH_COOKIE = "refresh_token"
REFRESH_COOKIE_PATH = "/auth/access"


def _set_refresh_cookie(response: Response, refresh_token: str):
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=refresh_token,
        httponly=env_bool("HTTPONLY", default=True),
        secure=env_bool("SECURE", default=False),
        samesite=os.getenv("SAMESITE", "Lax"),
        domain=env_none_or_str("COOKIE_DOMAIN", None),
        max_age=60 * 60 * 24 * 7,  # 7 days
        path=REFRESH_COOKIE_PATH,
    )


@router.post("/register", response_model=UserRegistrationResponseModel, status_code=201)
def register_user(data: UserRegistrationModel, db: Client = Depends(get_supabase)):
    """
    Register a new user.

    Creates a Supabase Auth user and the profile row that listings and
    conversations join against for the seller/buyer snapshot.

    **Input Fields**
    - **email**: must not already exist in Supabase Auth.
    - **name**: display name shown on listings and in the inbox.
    - **username**: 3-20 characters; letters, numbers, underscores, dots.
    - **password**: at least 8 characters.
    - **avatar**: optional image URL.

    **Errors**
    - 400: Failed to create user
    - 409: Email or Username already registered
    """
    username_check = (
        db.table("profiles").select("id").eq("username", data.username).execute()
    )

    if username_check.data:
        raise HTTPException(status_code=409, detail="Username already taken.")

    try:
        res = db.auth.sign_up(
            {
                "email": data.email,
                "password": data.password.get_secret_value(),
            }
        )
    except AuthApiError as error:
        logger.error(f"supabase_error={error}")
        raise HTTPException(status_code=409, detail=str(error))

    if not res.user:
        raise HTTPException(status_code=400, detail="Failed to create user")

    user_id = res.user.id

    db.table("profiles").insert(
        {
            "id": user_id,
            "name": data.name,
            "username": data.username,
            "avatar": data.avatar,
        }
    ).execute()

    logger.info(f"user_registered email={data.email}, username={data.username}")

    return {
        "id": user_id,
        "email": res.user.email,
        "username": data.username,
    }


@router.post("/login", response_model=UserLoginResponseModel, status_code=200)
def login_user(user_data: UserLoginModel, response: Response, db: Client = Depends(get_supabase)):
    """
    Password sign-in. Returns an access token and sets the refresh token in
    an HttpOnly cookie scoped to `/auth/access`.

    **Errors**
    - 401: Invalid email or password
    - 500: Supabase or internal server error
    """
    try:
        res = db.auth.sign_in_with_password(
            {
                "email": user_data.email,
                "password": user_data.password.get_secret_value(),
            }
        )
    except AuthApiError as error:
        raise HTTPException(status_code=401, detail=error.message)
    except Exception:
        logger.exception(f"user_login_failed email={user_data.email}")
        raise HTTPException(
            status_code=500, detail="An internal server error occurred during login."
        )

    if not res.session:
        raise HTTPException(
            status_code=500,
            detail="Supabase authentication returned an unexpected response.",
        )

    _set_refresh_cookie(response, res.session.refresh_token)
    logger.info(f"user_login_success email={user_data.email}")

    return {
        "access_token": res.session.access_token,
        "expires_in": res.session.expires_in,
        "user_id": res.user.id,
        "email": res.user.email,
    }


@router.get("/access", response_model=AccessTokenResponseModel, status_code=200)
def get_new_access(request: Request, response: Response, db: Client = Depends(get_supabase)):
    """
    Exchange the refresh token cookie for a new access token.

    Clients call this after entering or leaving admin mode so the new token
    carries the updated `app_metadata`.

    **Errors**
    - 401: Missing, expired, revoked, or invalid refresh token
    """
    refresh_token = request.cookies.get(REFRESH_COOKIE)

    if not refresh_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No refresh token provided.",
        )

    try:
        session = db.auth.refresh_session(refresh_token)
    except Exception:
        logger.warning("refresh_token_rejected")
        response.delete_cookie(
            key=REFRESH_COOKIE,
            domain=env_none_or_str("COOKIE_DOMAIN", None),
            path=REFRESH_COOKIE_PATH,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Refresh token invalid or expired. Please log in again.",
        )

    _set_refresh_cookie(response, session.session.refresh_token)
    return {"access_token": session.session.access_token}


@router.get("/me", response_model=MeResponseModel, status_code=200)
def get_me(
    session: SessionContext = Depends(get_session),
    db: Client = Depends(get_supabase),
):
    """
    The signed-in user's id, email, admin flag and profile snapshot.

    **Errors**
    - 401: Invalid or expired token
    - 500: Database error
    """
    try:
        profiles = fetch_profiles(db, [session.user_id])
    except Exception:
        logger.exception(f"profile_lookup_failed user_id={session.user_id}")
        raise HTTPException(500, detail="Database error while looking up profile.")

    return {
        "auth": {
            "id": session.user_id,
            "email": session.email,
            "is_admin": session.is_admin,
        },
        "profile": profiles[session.user_id],
    }


@router.post("/logout")
def logout(db: Client = Depends(get_supabase)):
    """
    Sign out and clear the refresh token cookie. Supabase can't revoke an
    issued JWT early, so the access token stays valid until it expires.
    """
    try:
        db.auth.sign_out()
    except Exception:
        logger.warning("supabase_sign_out_failed; clearing cookie anyway")

    response = JSONResponse({"logged_out": True})

    response.delete_cookie(
        key=REFRESH_COOKIE,
        path=REFRESH_COOKIE_PATH,  # must match set_cookie()
        domain=env_none_or_str("COOKIE_DOMAIN", None),
    )

    return response
