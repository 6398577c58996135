import os

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./contracts.db")

# Normalize Render Postgres URLs (postgres:// -> postgresql+psycopg2://)
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg2://", 1)

SECRET_KEY = os.environ.get("CT_SECRET_KEY", "dev-secret-change-me")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("CT_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))  # 7 days

# Cookie/security settings, override in production:
#   CT_COOKIE_SECURE=1 (sets Secure flag)
#   CT_COOKIE_SAMESITE=lax|strict|none
#   CT_COOKIE_DOMAIN=.yourdomain.com (optional)
COOKIE_SECURE = os.environ.get("CT_COOKIE_SECURE", "0") in ("1", "true", "True")
COOKIE_SAMESITE = os.environ.get("CT_COOKIE_SAMESITE", "lax")
COOKIE_DOMAIN = os.environ.get("CT_COOKIE_DOMAIN") or None

UPLOAD_DIR = os.environ.get("UPLOAD_DIR", "uploads")
MAX_DOCUMENT_BYTES = int(os.environ.get("CT_MAX_DOCUMENT_BYTES", 50 * 1024 * 1024))  # 50 MB

OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
AI_MODEL = os.environ.get("CT_AI_MODEL", "gpt-4o")
AI_MAX_TOKENS = int(os.environ.get("CT_AI_MAX_TOKENS", 4000))
ORGANIZATION_NAME = os.environ.get("CT_ORGANIZATION_NAME", "our organization")

FRESHSALES_DOMAIN = os.environ.get("FRESHSALES_DOMAIN")
FRESHSALES_API_KEY = os.environ.get("FRESHSALES_API_KEY")
SYNC_CONCURRENCY = max(1, int(os.environ.get("CT_SYNC_CONCURRENCY", 1)))
AUTO_SYNC_CUSTOMERS = os.environ.get("CT_AUTO_SYNC_CUSTOMERS", "1") in ("1", "true", "True")

LOG_LEVEL = os.environ.get("CT_LOG_LEVEL", "INFO")
