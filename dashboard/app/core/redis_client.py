import redis.asyncio as redis

from dashboard.app.core.config import settings


redis_client: redis.Redis | None = None


async def init_redis(url: str | None = None) -> None:
    """Initialise a shared Redis connection when one is configured."""
    global redis_client
    url = url or settings.REDIS_URL
    if not url:
        redis_client = None
        return
    redis_client = redis.from_url(
        url,
        decode_responses=True,
    )


async def close_redis() -> None:
    """Close the Redis connection if it was initialised."""
    global redis_client
    if redis_client is not None:
        await redis_client.aclose()
        redis_client = None
