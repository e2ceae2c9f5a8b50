import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


APP_ENV = os.getenv("APP_ENV", "production")
# Development webhooks need a public tunnel (e.g. ngrok) pointing at this server
TUNNEL_URL = os.getenv("TUNNEL_URL", "")
PUBLIC_DOMAIN = os.getenv("PUBLIC_DOMAIN", "localhost:8000")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

STATIC_DIR = os.getenv("STATIC_DIR") or os.path.join(os.getcwd(), "data")
DATABASE_URL = os.getenv("DATABASE_URL") or "sqlite:///" + os.getenv(
    "SQLITE_PATH", os.path.join(STATIC_DIR, "dev.sqlite")
)

USE_S3 = _flag("USE_S3")
S3_BUCKET = os.getenv("S3_BUCKET")
S3_ENDPOINT = os.getenv("S3_ENDPOINT")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
S3_REGION = os.getenv("S3_REGION", "auto")
# Public base for objects in the bucket, e.g. https://<project>.supabase.co/storage/v1/object/public/data
S3_PUBLIC_URL = os.getenv("S3_PUBLIC_URL", "").rstrip("/")
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "data")
BACKEND_PUBLIC_URL = os.getenv("BACKEND_PUBLIC_URL", "http://localhost:8000").rstrip("/")

REPLICATE_API_TOKEN = os.getenv("REPLICATE_API_TOKEN", "")
REPLICATE_API_URL = os.getenv("REPLICATE_API_URL", "https://api.replicate.com/v1").rstrip("/")
REPLICATE_MODEL_VERSION = os.getenv(
    "REPLICATE_MODEL_VERSION",
    "9222a21c181b707209ef12b5e0d7e94c994b58f01c7b2fec075d2e892362f13c",
)
TARGET_AGE = os.getenv("TARGET_AGE", "default")
WEBHOOK_PROVIDER = "replicate"

REDIS_URL = os.getenv("REDIS_URL")
RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "10"))
RATE_LIMIT_WINDOW_SECONDS = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "10"))
RATE_LIMIT_BUCKET = os.getenv("RATE_LIMIT_BUCKET", "upload")

UPLOAD_COST = int(os.getenv("UPLOAD_COST", "10"))
KEY_ALLOCATION_ATTEMPTS = int(os.getenv("KEY_ALLOCATION_ATTEMPTS", "5"))
CACHE_CONTROL_SECONDS = os.getenv("CACHE_CONTROL_SECONDS", "3600")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))


def webhook_domain() -> str:
    """Base URL the inference provider calls back to."""
    if APP_ENV == "development":
        return TUNNEL_URL.rstrip("/")
    return f"https://{PUBLIC_DOMAIN}"
