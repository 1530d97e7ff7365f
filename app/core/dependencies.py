import os
import logging
import jwt
from dotenv import load_dotenv
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel

load_dotenv()
logger = logging.getLogger(__name__)

security = HTTPBearer()
JWT_SIGN_KEY = os.getenv("SUPABASE_JWT_SECRET")


class SessionContext(BaseModel):
    """
    Who is making the request and what they may bypass.

    `is_admin` comes from the token's `app_metadata`, which only the service
    role can write (see `app/admin/routers.py`). Client-writable
    `user_metadata` is never consulted.
    """

    user_id: str
    email: str | None = None
    is_admin: bool = False


def decode_token(token: str) -> dict:
    try:
        payload = jwt.decode(
            token,
            JWT_SIGN_KEY,
            algorithms=["HS256"],
            issuer=f"{os.getenv('PUBLIC_SUPABASE_URL')}/auth/v1",
            options={"verify_aud": False},
            leeway=60,
        )
        return payload

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")

    except jwt.InvalidTokenError as e:
        logger.warning(f"jwt_verification_failed error={e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    return decode_token(credentials.credentials)


def session_from_claims(claims: dict) -> SessionContext:
    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    app_metadata = claims.get("app_metadata") or {}

    return SessionContext(
        user_id=str(user_id),
        email=claims.get("email"),
        is_admin=bool(app_metadata.get("is_admin", False)),
    )


def get_session(claims: dict = Depends(verify_token)) -> SessionContext:
    return session_from_claims(claims)


optional_security = HTTPBearer(auto_error=False)


def get_optional_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_security),
) -> SessionContext | None:
    """Session for signed-in callers, None for anonymous browsing."""
    if credentials is None:
        return None

    return session_from_claims(decode_token(credentials.credentials))
