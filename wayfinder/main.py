import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from fastapi import FastAPI, Request, status, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from neo4j.exceptions import ServiceUnavailable
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from wayfinder.api import router as api_router
from wayfinder.core.config import settings
from wayfinder.core.exceptions import (
    DuplicateLinkException,
    InvalidLinkException,
    LinkNotFoundException,
    NarrativeNotFoundException,
    NodeNotFoundException,
    OwnershipException,
    WayfinderException,
)
from wayfinder.core.limiter import limiter
from wayfinder.core.redis_client import RedisClient
from wayfinder.db.driver import Neo4jDriver

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

MAX_RETRIES = 10
RETRY_DELAY = 3
INITIALIZATION_GRACE_PERIOD = 30
HEALTH_IDLE_THRESHOLD_SECONDS = 600
neo4j_ready_event = asyncio.Event()
_last_non_health_activity = time.time()

SCHEMA_STATEMENTS = (
    "CREATE CONSTRAINT concept_id IF NOT EXISTS FOR (n:Concept) REQUIRE n.id IS UNIQUE",
    "CREATE CONSTRAINT seed_id IF NOT EXISTS FOR (s:Seed) REQUIRE s.id IS UNIQUE",
    "CREATE INDEX concept_userId IF NOT EXISTS FOR (n:Concept) ON (n.userId)",
    "CREATE INDEX seed_userId IF NOT EXISTS FOR (s:Seed) ON (s.userId)",
    "CREATE INDEX reflection_userId IF NOT EXISTS FOR (r:Reflection) ON (r.userId)",
    "CREATE INDEX micro_discovery_nodeId IF NOT EXISTS FOR (d:MicroDiscovery) ON (d.nodeId)",
    "CREATE INDEX narrative_userId IF NOT EXISTS FOR (s:Narrative) ON (s.userId)",
    "CREATE INDEX lateral_id IF NOT EXISTS FOR ()-[r:LATERAL]-() ON (r.id)",
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup Logic ---
    startup_task = asyncio.create_task(_initialize_neo4j())

    try:
        await asyncio.wait_for(asyncio.shield(startup_task), timeout=INITIALIZATION_GRACE_PERIOD)
    except asyncio.TimeoutError:
        logger.warning(
            "Neo4j initialization is taking longer than expected. "
            "Continuing startup while initialization finishes in the background."
        )
    except Exception as exc:
        logger.error("Neo4j initialization task raised an unexpected error: %s", exc)

    try:
        yield
    finally:
        # --- Shutdown Logic ---
        if not startup_task.done():
            startup_task.cancel()
            with suppress(asyncio.CancelledError):
                await startup_task

        await Neo4jDriver.close_driver()
        await RedisClient.close_client()
        logger.info("Closed Neo4j and Redis connections.")

async def _initialize_neo4j():
    """Verify Neo4j connectivity and make sure constraints and indexes exist."""
    neo4j_ready_event.clear()
    for attempt in range(MAX_RETRIES):
        try:
            logger.info("Initializing Neo4j (attempt %d/%d)...", attempt + 1, MAX_RETRIES)
            driver = await Neo4jDriver.get_driver()
            await driver.verify_connectivity()
            await _ensure_schema(driver)
            logger.info("Neo4j initialization complete.")
            neo4j_ready_event.set()
            return
        except ServiceUnavailable as exc:
            if attempt + 1 == MAX_RETRIES:
                logger.error("Could not connect to Neo4j after %d attempts. Last error: %s", MAX_RETRIES, exc)
                raise
            backoff = RETRY_DELAY * (attempt + 1)
            logger.warning("Neo4j not ready (%s). Retrying in %d seconds...", exc, backoff)
            await asyncio.sleep(backoff)

async def _ensure_schema(driver):
    async with driver.session() as session:
        for statement in SCHEMA_STATEMENTS:
            result = await session.run(statement)
            await result.consume()
    logger.info("Database constraints and indexes are configured.")


app = FastAPI(
    title="Wayfinder Curiosity Journal API",
    description="Record idea seeds, explore lateral connections, and browse your curiosity map.",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Exempt all OPTIONS requests from rate limiting to prevent CORS preflight issues
app.state.limiter.exempt_methods = ["OPTIONS"]

allowed_origins = [
    "http://localhost:3000",
    "http://localhost:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["Content-Type", "X-User-ID", "Idempotency-Key"],
)

_EXCEPTION_STATUS = {
    NodeNotFoundException: status.HTTP_404_NOT_FOUND,
    LinkNotFoundException: status.HTTP_404_NOT_FOUND,
    NarrativeNotFoundException: status.HTTP_404_NOT_FOUND,
    OwnershipException: status.HTTP_401_UNAUTHORIZED,
    InvalidLinkException: status.HTTP_400_BAD_REQUEST,
    DuplicateLinkException: status.HTTP_409_CONFLICT,
}

@app.exception_handler(WayfinderException)
async def wayfinder_exception_handler(request: Request, exc: WayfinderException):
    status_code = _EXCEPTION_STATUS.get(type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error("Unhandled domain error on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"message": exc.message},
    )

app.include_router(api_router.router)

@app.middleware("http")
async def track_activity(request: Request, call_next):
    response = await call_next(request)
    if not request.url.path.startswith("/healthz"):
        global _last_non_health_activity
        _last_non_health_activity = time.time()
    return response

@app.get("/")
async def root():
    return {"message": "Welcome to the Wayfinder Curiosity Journal API"}

@app.get("/healthz", tags=["Health"], status_code=status.HTTP_200_OK)
async def health_check():
    """
    Returns the operational status of the service and indicates whether
    clients should keep polling.
    """
    idle_seconds = time.time() - _last_non_health_activity
    polling_allowed = idle_seconds < HEALTH_IDLE_THRESHOLD_SECONDS
    return {
        "status": "ok",
        "neo4j_ready": neo4j_ready_event.is_set(),
        "polling_allowed": polling_allowed,
        "idle_seconds": int(idle_seconds)
    }

@app.get("/redis-health", tags=["Health"], status_code=status.HTTP_200_OK)
async def redis_health_check():
    """Lightweight Redis readiness probe."""
    redis_client = RedisClient.get_client()
    try:
        pong = await redis_client.ping()
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Redis unavailable: {exc}"
        ) from exc
    return {"status": "ok", "ping": pong}
