"""FastAPI application entrypoint for the branch library circulation service."""
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from circulation import __version__
from circulation.api.routes import router
from circulation.bootstrap import Library, create_library
from circulation.core.config import settings
from circulation.core.logging import get_logger, setup_logging

setup_logging(level=settings.log_level, json_format=settings.use_json_logs)
logger = get_logger(__name__)

APP_NAME = "Branch Library Circulation"


def create_app(library: Optional[Library] = None) -> FastAPI:
    """Build the API around ``library`` (a freshly wired one if None)."""
    app = FastAPI(
        title=APP_NAME,
        description="Loans, returns and loan notifications for a single library branch",
        version=__version__,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )
    app.state.library = library or create_library()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log every request with timing, status code and a request id."""
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration_ms, 2),
                },
                exc_info=True
            )
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": request_id}
            )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Request completed: {request.method} {request.url.path}",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            }
        )
        response.headers["X-Request-ID"] = request_id
        return response

    @app.get("/health")
    def health_check():
        """Liveness probe with a summary of in-memory state."""
        current = app.state.library
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.environment,
            "books": len(current.store.books),
            "users": len(current.store.users),
            "loans": len(current.store.loans),
            "notification_channel": current.notification_channel.value,
        }

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
