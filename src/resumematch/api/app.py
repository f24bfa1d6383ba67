from __future__ import annotations

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from resumematch.api.deps import get_services
from resumematch.api.routes import router as api_router
from resumematch.config import get_settings
from resumematch.core.runtime import Services
from resumematch.db.init import init_database
from resumematch.logging_config import configure_logging


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(title=settings.app_name)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup() -> None:
        configure_logging()
        init_database()

    @app.get("/health")
    def health(services: Services = Depends(get_services)) -> JSONResponse:
        status = services.manager.health_check()
        code = 200 if status.status == "healthy" else 503
        return JSONResponse(status.model_dump(), status_code=code)

    app.include_router(api_router)
    return app
