"""Application factory shared by PraiseBot HTTP entry points."""
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from praisebot import __version__
from praisebot.core.db import get_db, ping
from praisebot.core.logging import get_logger, setup_logging
from praisebot.core.settings import get_settings
from praisebot.core.time import business_timezone, utc_now


def create_app(service_name: str) -> FastAPI:
    """
    Build a FastAPI app with logging, CORS, `/healthz` and `/`.

    Args:
        service_name: Name reported by the health and root endpoints

    Returns:
        Configured application; callers register their own routes on it
    """
    setup_logging(service_name)
    logger = get_logger(__name__)
    settings = get_settings()

    app = FastAPI(
        title=f"{settings.app_name} - {service_name.title()}",
        description=f"{settings.app_name} {service_name} service: praise feed, hype widget and weekly digests",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/healthz")
    async def health_check(db: AsyncSession = Depends(get_db)):
        """Liveness plus a database round trip."""
        body = {
            "service": service_name,
            "version": __version__,
            "business_utc_offset": str(business_timezone()),
            "timestamp": utc_now().isoformat(),
        }
        try:
            await ping(db)
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"{service_name} health check failed: {e}")
            return JSONResponse(status_code=503, content={**body, "status": "unhealthy", "error": str(e)})
        return {**body, "status": "healthy"}

    @app.get("/")
    async def root():
        return {"service": service_name, "version": __version__}

    return app
