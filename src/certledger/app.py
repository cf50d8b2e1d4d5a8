"""FastAPI application factory for CertLedger."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from certledger.common.config import get_settings
from certledger.common.logging import get_logger, setup_logging
from certledger.common.schemas import HealthResponse


def create_app() -> FastAPI:
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        setup_logging(settings.log_level)
        from certledger.deps import close_clients, get_db
        db = get_db()
        await db.init()
        await db.create_all()
        get_logger("app").info(
            "CertLedger started on %s as %s", settings.cardano_network, settings.organization_name,
        )
        yield
        # Shutdown
        await close_clients()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers
    from certledger.issuance.router import router as issuance_router
    from certledger.verification.router import router as verification_router

    prefix = settings.api_prefix
    app.include_router(issuance_router, prefix=prefix, tags=["issuance"])
    app.include_router(verification_router, prefix=prefix, tags=["verification"])

    return app
