import logging
import os
from functools import lru_cache

from . import config
from .auth import SupabaseAuthenticator
from .db import SqlKeyValueStore
from .flow import JobDispatcher, UploadFlow
from .inference import ReplicateClient
from .ratelimit import MemorySlidingWindowLimiter, RedisSlidingWindowLimiter
from .storage import LocalBlobStore, S3BlobStore

logger = logging.getLogger("agify-backend")


def s3_configured() -> bool:
    return bool(
        config.USE_S3
        and config.S3_BUCKET
        and config.S3_ACCESS_KEY
        and config.S3_SECRET_KEY
        and config.S3_ENDPOINT
    )


def local_assets_dir() -> str:
    return os.path.join(config.STATIC_DIR, config.STORAGE_BUCKET)


@lru_cache(maxsize=1)
def get_store() -> SqlKeyValueStore:
    os.makedirs(config.STATIC_DIR, exist_ok=True)
    return SqlKeyValueStore(config.DATABASE_URL)


@lru_cache(maxsize=1)
def get_blob_store():
    if s3_configured():
        return S3BlobStore(
            bucket=config.S3_BUCKET,
            endpoint=config.S3_ENDPOINT,
            access_key=config.S3_ACCESS_KEY,
            secret_key=config.S3_SECRET_KEY,
            region=config.S3_REGION,
            public_base_url=config.S3_PUBLIC_URL or None,
        )
    logger.info("S3 not configured; storing uploads under %s", local_assets_dir())
    return LocalBlobStore(config.STATIC_DIR, config.STORAGE_BUCKET, config.BACKEND_PUBLIC_URL)


@lru_cache(maxsize=1)
def get_rate_limiter():
    if config.REDIS_URL:
        return RedisSlidingWindowLimiter.from_url(
            config.REDIS_URL,
            requests=config.RATE_LIMIT_REQUESTS,
            window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
        )
    logger.warning("REDIS_URL not set; rate limiting is per-process")
    return MemorySlidingWindowLimiter(
        requests=config.RATE_LIMIT_REQUESTS,
        window_seconds=config.RATE_LIMIT_WINDOW_SECONDS,
    )


@lru_cache(maxsize=1)
def get_upload_flow() -> UploadFlow:
    inference = ReplicateClient(
        api_token=config.REPLICATE_API_TOKEN,
        version=config.REPLICATE_MODEL_VERSION,
        target_age=config.TARGET_AGE,
        base_url=config.REPLICATE_API_URL,
        timeout=config.HTTP_TIMEOUT_SECONDS,
    )
    dispatcher = JobDispatcher(
        blob_store=get_blob_store(),
        inference=inference,
        webhook_domain=config.webhook_domain,
        provider=config.WEBHOOK_PROVIDER,
        cache_control=config.CACHE_CONTROL_SECONDS,
    )
    return UploadFlow(
        rate_limiter=get_rate_limiter(),
        authenticator=SupabaseAuthenticator(
            config.SUPABASE_URL, config.SUPABASE_ANON_KEY, timeout=config.HTTP_TIMEOUT_SECONDS
        ),
        store=get_store(),
        dispatcher=dispatcher,
        cost=config.UPLOAD_COST,
        max_key_attempts=config.KEY_ALLOCATION_ATTEMPTS,
        bucket=config.RATE_LIMIT_BUCKET,
    )
