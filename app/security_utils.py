"""
Security Utilities
Token encryption at rest, opaque token generation and signed OAuth state
"""

import base64
import hashlib
import logging
import secrets
from functools import lru_cache
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .config import SECRET_KEY, TOKEN_ENCRYPTION_KEY

logger = logging.getLogger(__name__)

OAUTH_STATE_SALT = "google-calendar-oauth-state"
OAUTH_STATE_MAX_AGE = 600  # 10 minutes to complete the consent screen


# ============================================================================
# TOKEN ENCRYPTION
# ============================================================================


@lru_cache(maxsize=1)
def get_token_cipher() -> Fernet:
    """Fernet cipher for OAuth tokens; derives a key from SECRET_KEY when none is configured"""
    if TOKEN_ENCRYPTION_KEY:
        return Fernet(TOKEN_ENCRYPTION_KEY.encode())

    derived = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(derived)


def encrypt_token(value: str) -> str:
    return get_token_cipher().encrypt(value.encode()).decode()


def decrypt_token(value: str) -> str:
    """Decrypt a stored token; raises ValueError when the ciphertext is unusable"""
    try:
        return get_token_cipher().decrypt(value.encode()).decode()
    except InvalidToken as e:
        logger.error("❌ Stored OAuth token could not be decrypted (key rotated?)")
        raise ValueError("Stored token could not be decrypted") from e


# ============================================================================
# TOKEN GENERATION & VALIDATION
# ============================================================================


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure random token"""
    return secrets.token_urlsafe(length)


def generate_oauth_state(data: dict[str, Any]) -> str:
    """Signed, time-limited state parameter for the OAuth consent redirect"""
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    return serializer.dumps(data, salt=OAUTH_STATE_SALT)


def verify_oauth_state(token: str, max_age: int = OAUTH_STATE_MAX_AGE) -> Optional[dict[str, Any]]:
    """
    Verify and decode an OAuth state parameter

    Returns:
        Decoded data if valid, None if invalid or expired
    """
    serializer = URLSafeTimedSerializer(SECRET_KEY)
    try:
        return serializer.loads(token, salt=OAUTH_STATE_SALT, max_age=max_age)
    except SignatureExpired:
        logger.warning("OAuth state expired")
        return None
    except BadSignature:
        logger.warning("Invalid OAuth state signature")
        return None
