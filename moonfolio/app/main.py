"""
Moonfolio FastAPI application.
Main entry point for the backend API.

Run with:
    uvicorn moonfolio.app.main:app --port 8000
    python -m moonfolio.app.main [--test]
"""
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from moonfolio.app.api.v1.router import router as api_v1_router
from moonfolio.app.config import Settings, get_settings, is_test_mode, set_test_mode
from moonfolio.app.logging_config import configure_logging, get_logger
from moonfolio.app.runtime import build_runtime
from moonfolio.app.services.chain_reader import ChainReaderProvider
from moonfolio.app.services.errors import MoonfolioError
from moonfolio.app.services.price_source import PriceSourceProvider

# Check for --test flag in command line arguments
# This must be done before settings are read
if "--test" in sys.argv:
    set_test_mode(True)
    sys.argv.remove("--test")  # Remove flag so uvicorn doesn't complain

logger = get_logger(__name__)


async def moonfolio_error_handler(request: Request, exc: MoonfolioError) -> JSONResponse:
    """Render every domain error as ErrorResponse with its HTTP status."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log("Request failed", path=request.url.path, method=request.method, error_code=exc.error_code,
        message=exc.message, applied=exc.applied)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(
    settings: Optional[Settings] = None,
    price_provider: Optional[PriceSourceProvider] = None,
    chain_provider: Optional[ChainReaderProvider] = None,
    ) -> FastAPI:
    """
    Build the application.

    Args:
        settings: defaults to get_settings()
        price_provider / chain_provider: replace the configured providers (tests)
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL, enable_file_logging=settings.LOG_TO_FILE)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        Application lifespan context manager.
        Builds the runtime on startup and releases it on shutdown.
        """
        logger.info(
            "Starting Moonfolio",
            version=settings.VERSION,
            storage=settings.STORAGE_BACKEND,
            database_url=settings.DATABASE_URL.split("///")[-1],  # Hide full path in logs
            test_mode=is_test_mode(),
            )
        runtime = build_runtime(settings, price_provider=price_provider, chain_provider=chain_provider)
        await runtime.prepare_storage()
        app.state.runtime = runtime
        runtime.broadcaster.start()

        yield
        # Shutdown
        await runtime.close()
        logger.info("Shutting down Moonfolio")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        lifespan=lifespan,
        )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        )

    app.add_exception_handler(MoonfolioError, moonfolio_error_handler)

    # Mount API v1 router
    app.include_router(api_v1_router, prefix=settings.API_V1_PREFIX)

    @app.get("/")
    async def root():
        """
        Root endpoint.
        Provides basic API information.
        """
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": f"{settings.API_V1_PREFIX}/docs",
            }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "moonfolio.app.main:app",
        host="0.0.0.0",
        port=_settings.TEST_PORT if is_test_mode() else _settings.PORT,
        )
