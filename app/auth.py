import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError
from jose import jwt as jose_jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import SESSION_JWT_AUDIENCE, SESSION_JWT_SECRET
from .database import get_db
from .errors import AuthError, PersistenceError
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


def verify_session_token(token: str) -> dict:
    """
    Verify a session token issued by the identity provider.
    Session tokens are HS256 JWTs carrying 'sub', 'email' and 'aud'.
    """
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed session token received (length {len(token)})")
        raise AuthError("Invalid token format. Expected a valid JWT token.")

    try:
        payload = jose_jwt.decode(
            token,
            SESSION_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=SESSION_JWT_AUDIENCE,
        )
    except ExpiredSignatureError as e:
        logger.info("ℹ️ Session token expired")
        raise AuthError("Session has expired. Please sign in again.") from e
    except JWTError as e:
        logger.warning(f"⚠️ Session token verification failed: {e}")
        raise AuthError("Token verification failed") from e

    if not payload.get("sub"):
        logger.error(f"❌ Token missing subject claim. Available claims: {list(payload.keys())}")
        raise AuthError("Invalid token claims")

    return payload


def get_or_create_user(db: Session, claims: dict) -> User:
    """Find the user for a verified session, creating it on first sight"""
    auth_uid = claims["sub"]
    email = claims.get("email")
    metadata = claims.get("user_metadata") or {}

    user = db.query(User).filter(User.auth_uid == auth_uid).first()
    if user:
        return user

    logger.info(f"🆕 Creating new user for subject {auth_uid}")
    user = User(auth_uid=auth_uid, email=email, full_name=metadata.get("full_name"))
    db.add(user)
    try:
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        # Another request may have created the same user concurrently
        existing = db.query(User).filter(User.auth_uid == auth_uid).first()
        if existing:
            return existing
        logger.error(f"❌ Failed to create user: {str(e)}")
        raise PersistenceError(f"Failed to create user: {str(e)}") from e

    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the session bearer token"""
    if not credentials or not credentials.credentials:
        raise AuthError(
            "Not authenticated. Please provide a valid Bearer token in the Authorization header."
        )

    claims = verify_session_token(credentials.credentials)
    user = get_or_create_user(db, claims)
    logger.debug(f"✅ User authenticated: {user.id}")
    return user
