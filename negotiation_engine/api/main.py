"""
FastAPI main application for the Price Negotiation Engine.
"""

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from negotiation_engine.config import get_engine_settings
from negotiation_engine.db import close_db, get_pg_pool, get_redis, init_db
from negotiation_engine.engine import Engine, build_engine

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(engine: Optional[Engine] = None, run_scheduler: bool = True) -> FastAPI:
    """
    Create the API application.

    Args:
        engine: Prebuilt engine; when omitted one is built from the
            environment configuration at startup
        run_scheduler: Run the expiry sweeper alongside the API
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events"""
        logger.info("Starting Negotiation Engine API...")
        owns_connections = app.state.engine is None
        if owns_connections:
            settings = get_engine_settings()
            postgres = settings.storage.backend == "postgres"
            await init_db(
                settings.storage.database_url if postgres else None,
                settings.storage.redis_url,
            )
            app.state.engine = build_engine(
                settings,
                pool=get_pg_pool() if postgres else None,
                redis_client=get_redis(),
            )
            logger.info("Engine initialized")

        sweeper = None
        if run_scheduler:
            sweeper = asyncio.create_task(app.state.engine.scheduler.start())

        yield

        logger.info("Shutting down Negotiation Engine API...")
        if sweeper is not None:
            app.state.engine.scheduler.stop()
            sweeper.cancel()
        if owns_connections:
            await close_db()

    app = FastAPI(
        title="Negotiation Engine API",
        description="Buyer/seller price negotiation with redeemable discount codes",
        version=VERSION,
        lifespan=lifespan
    )
    app.state.engine = engine

    # CORS middleware - allow all origins for development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint, including the expiry sweeper"""
        current = request.app.state.engine
        scheduler = current.scheduler.health() if current else None
        healthy = current is not None and scheduler["healthy"]
        return {
            "status": "healthy" if healthy else "degraded",
            "version": VERSION,
            "scheduler": scheduler,
        }

    # Import and include routers
    from negotiation_engine.api.routers import discount_codes, negotiations

    app.include_router(negotiations.router, prefix="/api", tags=["negotiations"])
    app.include_router(discount_codes.router, prefix="/api", tags=["discount-codes"])

    return app


app = create_app()
