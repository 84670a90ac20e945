import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./calendar.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Session tokens are HS256 JWTs issued by the identity provider (Supabase-style)
SESSION_JWT_SECRET = os.getenv("SESSION_JWT_SECRET", SECRET_KEY)
SESSION_JWT_AUDIENCE = os.getenv("SESSION_JWT_AUDIENCE", "authenticated")

# Fernet key for OAuth tokens at rest (generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())")
# Falls back to a key derived from SECRET_KEY when unset
TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")

# Frontend base URL for share links and redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# Google Calendar OAuth Configuration
# OAuth flow: Google → Frontend → Frontend sends code to Backend API
GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", f"{FRONTEND_URL}/google-calendar-callback")
GOOGLE_HTTP_TIMEOUT = float(os.getenv("GOOGLE_HTTP_TIMEOUT", "30"))

# Refresh access tokens this many seconds before they expire
TOKEN_REFRESH_MARGIN_SECONDS = int(os.getenv("TOKEN_REFRESH_MARGIN_SECONDS", "300"))

# Facebook Send Dialog
FACEBOOK_APP_ID = os.getenv("FACEBOOK_APP_ID")

# Sync locking: "memory" (single instance) or "redis" (shared across instances)
SYNC_LOCK_BACKEND = os.getenv("SYNC_LOCK_BACKEND", "memory").lower()
SYNC_LOCK_TTL_SECONDS = int(os.getenv("SYNC_LOCK_TTL_SECONDS", "600"))

# Public RSVP endpoints rate limit (requests per window per IP)
RSVP_RATE_LIMIT = int(os.getenv("RSVP_RATE_LIMIT", "30"))
RSVP_RATE_WINDOW = int(os.getenv("RSVP_RATE_WINDOW", "60"))

# CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", FRONTEND_URL).split(",")
    if origin.strip()
]

# Redis (rate limiting, cross-instance sync locks, ARQ queue)
# REDIS_URL takes precedence over the individual settings
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_SSL = os.getenv("REDIS_SSL", "false").lower() == "true"

# Rate limiting backend: "redis" (hybrid in-memory + Redis) or "memory" (single instance, dev)
RATE_LIMIT_BACKEND = os.getenv("RATE_LIMIT_BACKEND", "redis" if REDIS_URL else "memory").lower()

# ARQ worker tunables
ARQ_MAX_JOBS = int(os.getenv("ARQ_MAX_JOBS", "20"))
ARQ_JOB_TIMEOUT = int(os.getenv("ARQ_JOB_TIMEOUT", "600"))
# Finished sync jobs block a new enqueue under the same job id until their result expires
ARQ_SYNC_KEEP_RESULT = int(os.getenv("ARQ_SYNC_KEEP_RESULT", "300"))
