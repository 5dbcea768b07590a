import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from ratelimiter.app.api.demo import router as demo_router
from ratelimiter.app.api.metrics import RateLimiterMetrics, router as metrics_router
from ratelimiter.app.core.config import Settings, settings as default_settings
from ratelimiter.app.core.logging import get_logger, setup_logging
from ratelimiter.app.middleware.rate_limit import RateLimitMiddleware
from ratelimiter.app.services.route_limits import RouteLimitTable
from ratelimiter.app.services.token_bucket import (
    BucketStore,
    LocalNegativeCache,
    RateLimitEvaluator,
    create_bucket_store,
)


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[BucketStore] = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        app_settings: Settings to use (defaults to the global settings)
        store: Bucket store to use (defaults to the one selected by settings)
        clock: Returns the current time in seconds

    Returns:
        Configured FastAPI application instance
    """
    cfg = app_settings or default_settings

    setup_logging()
    logger = get_logger(__name__)

    if store is None:
        store = create_bucket_store(
            redis_enabled=cfg.redis_enabled,
            redis_url=cfg.redis_url,
            timeout=cfg.store_timeout_seconds,
            socket_timeout=cfg.redis_socket_timeout,
        )
    evaluator = RateLimitEvaluator(
        store,
        negative_cache=LocalNegativeCache(
            max_entries=cfg.negative_cache_max_entries, clock=clock
        ),
        clock=clock,
        sweep_interval=cfg.negative_cache_sweep_interval_seconds,
    )
    routes = RouteLimitTable.from_settings(cfg)
    metrics = RateLimiterMetrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Start the negative cache sweeper; release the store on shutdown."""
        await evaluator.start_sweeper()
        logger.info(
            "Application startup complete",
            extra={"store": store.name, "gated_routes": routes.routes},
        )
        yield
        await evaluator.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Rate Limiter",
        description="Distributed token bucket rate limiting backed by Redis",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = cfg
    app.state.evaluator = evaluator
    app.state.routes = routes
    app.state.metrics = metrics

    # Add middleware (last added = first executed)
    app.add_middleware(
        RateLimitMiddleware,
        evaluator=evaluator,
        routes=routes,
        metrics=metrics,
        key_prefix=cfg.bucket_key_prefix,
        identity_header=cfg.identity_header,
        trust_forwarded_for=cfg.trust_forwarded_for,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        max_age=600,
    )

    app.include_router(demo_router)
    app.include_router(metrics_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check reporting the bucket store and gated routes."""
        state = request.app.state
        store_ok = await state.evaluator.store.ping()
        return {
            "status": "ok" if store_ok else "degraded",
            "components": {
                "store": {
                    "status": "ok" if store_ok else "error",
                    "type": state.evaluator.store.name,
                },
                "negative_cache": {"entries": len(state.evaluator.negative_cache)},
            },
            "gated_routes": state.routes.routes,
        }

    return app


app = create_app()
