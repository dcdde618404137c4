import logging
import os
from collections.abc import Callable
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from awardscout.config import settings

# ─── Logging setup (file + console) ───
_LOG_DIR = Path(__file__).resolve().parent.parent.parent / "logs"
_LOG_DIR.mkdir(exist_ok=True)

_log_level = getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO)

logging.basicConfig(
    level=_log_level,
    format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        RotatingFileHandler(
            _LOG_DIR / "awardscout.log",
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5,
            encoding="utf-8",
        ),
    ],
)

# Quiet noisy libraries
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

from awardscout.routers import awards, enrichment
from awardscout.services.award_stream_client import AwardStreamClient
from awardscout.services.cached_award_fetcher import CachedAwardFetcher
from awardscout.services.enrichment_hub import EnrichmentHub
from awardscout.services.request_cache import build_request_cache

logger = logging.getLogger(__name__)


def _default_hub() -> EnrichmentHub:
    return EnrichmentHub(CachedAwardFetcher(AwardStreamClient(), build_request_cache()))


def create_app(hub_factory: Callable[[], EnrichmentHub] = _default_hub) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.enrichment_hub = hub_factory()
        logger.info(f"Award provider: {settings.award_api_base_url}{settings.award_api_path}")
        yield
        await app.state.enrichment_hub.close()

    app = FastAPI(
        title="AwardScout",
        description="Mileage enrichment for cash-fare flight search",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(enrichment.router, prefix="/api/enrichment", tags=["enrichment"])
    app.include_router(awards.router, prefix="/api/awards", tags=["awards"])

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "service": "awardscout"}

    return app


app = create_app()
