import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .dependencies import get_pdf_renderer
from .routes.catalog import router as catalog_router
from .routes.dashboard import router as dashboard_router
from .routes.guides import router as guides_router
from .routes.health import router as health_router
from .routes.highlights import router as highlights_router
from .routes.reports import router as reports_router
from .routes.users import router as users_router

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await get_pdf_renderer().close()

def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = FastAPI(title="Guide Tracker API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(health_router, tags=["health"])
    app.include_router(guides_router, prefix="/v1", tags=["guides"])
    app.include_router(dashboard_router, prefix="/v1", tags=["dashboard"])
    app.include_router(highlights_router, prefix="/v1", tags=["route-highlights"])
    app.include_router(catalog_router, prefix="/v1", tags=["catalog"])
    app.include_router(reports_router, prefix="/v1", tags=["reports"])
    app.include_router(users_router, prefix="/v1", tags=["users"])
    return app

app = create_app()
