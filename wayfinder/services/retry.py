import asyncio
import logging
from neo4j.exceptions import SessionExpired, ServiceUnavailable

logger = logging.getLogger(__name__)

async def with_retry(func, *args, retries: int = 3, delay: float = 0.5, **kwargs):
    """Await ``func`` again when Neo4j drops the connection, backing off linearly."""
    for attempt in range(retries):
        try:
            return await func(*args, **kwargs)
        except (SessionExpired, ServiceUnavailable) as exc:
            if attempt + 1 == retries:
                raise
            logger.warning("Neo4j call %s failed (%s); retrying.", getattr(func, "__name__", func), exc)
            await asyncio.sleep(delay * (attempt + 1))
