"""
FastAPI application for the Visual Search Game LTI tool.

Startup is an ordered phase run in the lifespan hook: logging, Redis
storages, then platform bootstrap.  Uvicorn starts accepting requests only
after it completes.
"""

from dotenv import load_dotenv

# Load .env file before any other imports that might need env vars
load_dotenv()

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from vsearch_lti.exceptions import GradePassbackError
from vsearch_lti.logs import configure_logging
from vsearch_lti.lti.platforms import PlatformRegistry, parse_platforms
from vsearch_lti.lti.routes import get_provider, init_lti_storage
from vsearch_lti.lti.routes import router as lti_router
from vsearch_lti.routes import router as grade_router
from vsearch_lti.settings import Settings, get_settings

logger = logging.getLogger(__name__)


async def bootstrap_platforms(settings: Settings) -> None:
    """Register configured platforms; per-entry failures are only logged."""
    registry = PlatformRegistry(get_provider())
    report = await asyncio.to_thread(registry.bootstrap, parse_platforms(settings.platforms))
    logger.info(
        "Platform bootstrap: %d registered, %d already registered, %d skipped, %d failed",
        len(report.registered), len(report.already_registered),
        len(report.skipped), len(report.failed),
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Any exception here aborts startup, so a process that cannot reach its
    trust store never serves grade requests.
    """
    settings = get_settings()
    configure_logging(settings)

    init_lti_storage(settings.redis_url, settings.launch_ttl)
    await bootstrap_platforms(settings)

    logger.info("Visual Search Game LTI tool ready on :%s", settings.port)
    yield


async def handle_passback_error(request: Request, exc: GradePassbackError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"invalid request: {errors}"})


def get_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Visual Search Game LTI",
        description="LTI 1.3 tool with AGS grade passback",
        version="0.1.0",
        lifespan=lifespan,
    )

    settings = get_settings()

    # CSP middleware: only the LMS may frame the game
    class CSPMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request: Request, call_next):
            response: Response = await call_next(request)
            response.headers["Content-Security-Policy"] = (
                f"frame-ancestors {settings.csp_frame_ancestors}"
            )
            # Remove X-Frame-Options so CSP frame-ancestors takes precedence
            if "X-Frame-Options" in response.headers:
                del response.headers["X-Frame-Options"]
            return response

    app.add_middleware(CSPMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(GradePassbackError, handle_passback_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    app.include_router(lti_router)
    app.include_router(grade_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    return app


def main() -> None:
    """Run the service under uvicorn."""
    import uvicorn

    settings = get_settings()
    configure_logging(settings)
    uvicorn.run("vsearch_lti.app:app", host=settings.host, port=settings.port, log_config=None)


# Create the app instance
app = get_app()
