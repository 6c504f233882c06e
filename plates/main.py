# plates/main.py

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api import router as plates_router
from .database import Base, engine
from .exceptions import APIException
from .service import PlateService, run_startup_migration

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def create_app(service: Optional[PlateService] = None, migrate_on_startup: bool = True) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if service is None:
            # SQLAlchemy tablolarını oluştur
            Base.metadata.create_all(bind=engine)
        plate_service = app.state.service = service or PlateService()
        await plate_service.start()
        migration = None
        if migrate_on_startup:
            migration = asyncio.create_task(run_startup_migration(plate_service), name="cloud-migration")
        try:
            yield
        finally:
            if migration is not None:
                await migration
            await plate_service.stop()

    app = FastAPI(
        title="Plates API",
        description="Plaka kayıtları ve fotoğrafları için yerel + S3 depolama",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Geliştirme için * uygundur. Yayında sadece kendi frontend adresin olmalı!
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    app.include_router(plates_router)

    @app.get("/")
    async def root():
        return {
            "message": "Plates API çalışıyor",
            "status": "healthy",
            "version": VERSION,
        }

    @app.get("/health")
    async def health_check(request: Request):
        return {
            "status": "healthy",
            "timestamp": time.time(),
            "service": "plates-api",
            "version": VERSION,
            "cloud_available": request.app.state.service.cloud_available,
        }

    return app


app = create_app()
