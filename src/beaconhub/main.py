"""beaconhub application entrypoint."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session

from beaconhub import database
from beaconhub.beacons.directory import seed_default_beacons
from beaconhub.config import settings
from beaconhub.errors import BeaconHubError, StoreError

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup/shutdown lifecycle."""
    database.init_db()
    logger.info("Database initialized")

    if settings.seed_beacons:
        with Session(database.engine) as session:
            seed_default_beacons(session)

    yield


app = FastAPI(
    title="beaconhub",
    description="Indoor beacon presence tracking with live dashboard updates",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    openapi_url="/api/docs.json",
)


@app.exception_handler(BeaconHubError)
async def beaconhub_error_handler(request: Request, exc: BeaconHubError) -> JSONResponse:
    """Render the error taxonomy with the same envelope as successful calls."""
    if isinstance(exc, StoreError):
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.__cause__)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "code": exc.status_code,
            "message": exc.message,
            "timestamp": datetime.now(UTC).isoformat(),
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# Register routers
from beaconhub.api.events import router as events_router  # noqa: E402
from beaconhub.api.routes import router as api_router  # noqa: E402

app.include_router(api_router)
app.include_router(events_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok", "timestamp": datetime.now(UTC).isoformat()}


def main() -> None:
    import uvicorn

    logger.info("Starting beaconhub on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
