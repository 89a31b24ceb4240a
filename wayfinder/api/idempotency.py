import json
import logging
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute

from wayfinder.core.redis_client import get_redis_client

logger = logging.getLogger(__name__)

IDEMPOTENT_METHODS = {"POST"}
RESPONSE_TTL_SECONDS = 24 * 60 * 60
LOCK_TTL_SECONDS = 60


class IdempotentAPIRoute(APIRoute):
    """
    Replays the stored response when a POST is retried with the same Idempotency-Key.

    Only successful (2xx) responses are stored. Requests without the header, or
    using other methods, pass straight through without touching Redis.
    """

    def get_route_handler(self) -> Callable:
        original_handler = super().get_route_handler()

        async def idempotent_handler(request: Request) -> Response:
            idempotency_key = request.headers.get("idempotency-key")
            if request.method not in IDEMPOTENT_METHODS or not idempotency_key:
                return await original_handler(request)

            user_id = request.headers.get("x-user-id", "anonymous")
            cache_key = f"idempotency:{user_id}:{request.url.path}:{idempotency_key}"
            lock_key = f"{cache_key}:lock"
            redis_client = get_redis_client()

            cached = await redis_client.get(cache_key)
            if cached:
                logger.info("Replaying stored response for idempotency key %s", idempotency_key)
                stored = json.loads(cached)
                return Response(
                    content=stored["body"],
                    status_code=stored["status_code"],
                    media_type=stored.get("media_type"),
                )

            if not await redis_client.set(lock_key, "1", ex=LOCK_TTL_SECONDS, nx=True):
                return JSONResponse(
                    status_code=status.HTTP_409_CONFLICT,
                    content={"detail": "A request with this Idempotency-Key is already in progress."},
                )

            try:
                response = await original_handler(request)
                body = getattr(response, "body", None)
                if body is not None and 200 <= response.status_code < 300:
                    await redis_client.set(
                        cache_key,
                        json.dumps({
                            "body": body.decode("utf-8"),
                            "status_code": response.status_code,
                            "media_type": response.media_type,
                        }),
                        ex=RESPONSE_TTL_SECONDS,
                    )
                return response
            finally:
                await redis_client.delete(lock_key)

        return idempotent_handler
