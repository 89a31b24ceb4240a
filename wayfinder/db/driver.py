import logging
from neo4j import AsyncDriver, AsyncGraphDatabase
from wayfinder.core.config import settings

logger = logging.getLogger(__name__)

class Neo4jDriver:
    """Process-wide holder for the async Neo4j driver."""
    _driver: AsyncDriver | None = None

    @classmethod
    async def get_driver(cls) -> AsyncDriver:
        if cls._driver is None:
            logger.info("Creating Neo4j driver for %s", settings.NEO4J_URI)
            cls._driver = AsyncGraphDatabase.driver(
                settings.NEO4J_URI,
                auth=(settings.NEO4J_USER, settings.NEO4J_PASSWORD),
            )
        return cls._driver

    @classmethod
    async def close_driver(cls) -> None:
        if cls._driver is not None:
            await cls._driver.close()
            cls._driver = None

async def get_db_driver() -> AsyncDriver:
    return await Neo4jDriver.get_driver()
