import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import auth as firebase_auth

from . import config
from .firestore import init_firebase

logger = logging.getLogger(__name__)

security = HTTPBearer()


def verify_firebase_token(token: str) -> dict:
    """Verify a Firebase ID token and return its claims"""
    init_firebase()
    try:
        return firebase_auth.verify_id_token(token)
    except (ValueError, firebase_auth.InvalidIdTokenError, firebase_auth.ExpiredIdTokenError) as e:
        logger.warning(f"🚫 Firebase token rejected: {e}")
        raise HTTPException(status_code=401, detail="Invalid or expired token") from e
    except Exception as e:
        logger.error(f"❌ Firebase token verification error: {e}")
        raise HTTPException(status_code=401, detail="Unable to verify token") from e


def is_admin(claims: dict) -> bool:
    if claims.get("admin") is True or claims.get("role") == "admin":
        return True
    email = (claims.get("email") or "").lower()
    return bool(email) and email in config.ADMIN_EMAILS


async def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """Claims of the signed-in admin"""
    claims = verify_firebase_token(credentials.credentials)
    if not is_admin(claims):
        logger.warning(f"🚫 Non-admin {claims.get('email') or claims.get('uid')} denied")
        raise HTTPException(status_code=403, detail="Admin access required")
    return claims
