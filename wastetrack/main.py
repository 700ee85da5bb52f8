# wastetrack/main.py
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import uvicorn # For programmatic run, if needed

from wastetrack.config import Settings, settings
from wastetrack.data.truck_store import TruckStore
from wastetrack.exceptions import TrackingError
from wastetrack.routers import realtime, trucks
from wastetrack.services.broadcast import BroadcastChannel
from wastetrack.services.tracking_service import TruckTrackingService

# Configure logging
logging.basicConfig(level=settings.LOG_LEVEL.upper(),
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


async def tracking_error_handler(request: Request, exc: TrackingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.message})


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request.") if errors else "Invalid request."
    logger.warning(f"{request.method} {request.url.path} rejected (400): {message}")
    return JSONResponse(status_code=400, content={"success": False, "message": f"Invalid request body: {message}"})


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Builds the API with its own store and broadcast channel.

    The channel is created once here and passed to the tracking service;
    the websocket route picks the same instance up from app.state.
    """
    app_settings = app_settings or settings

    store = TruckStore(app_settings.TRUCKS_DATA_FILE)
    channel = BroadcastChannel(
        max_connections=app_settings.MAX_VIEWER_CONNECTIONS,
        queue_size=app_settings.VIEWER_QUEUE_SIZE,
    )

    app = FastAPI(
        title="Waste Truck Tracking API",
        description="Live locations of waste-collection trucks for the citizen and admin apps.",
        version="1.0.0"
    )
    app.state.settings = app_settings
    app.state.channel = channel
    app.state.tracking_service = TruckTrackingService(store, channel)

    # CORS Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[app_settings.FRONTEND_ORIGIN] if app_settings.FRONTEND_ORIGIN else ["*"], # Allow all if not specified
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TrackingError, tracking_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)

    # Include routers
    app.include_router(trucks.router, prefix="/api/trucks", tags=["Trucks"])
    app.include_router(realtime.router, tags=["Realtime"])

    @app.get("/", tags=["Root"])
    async def read_root():
        logger.info("Root endpoint was accessed.")
        return {"message": "Welcome to the Waste Truck Tracking API!"}

    @app.get("/health", tags=["Root"])
    def health_check():
        return {"status": "ok", "viewers": len(channel.subscribers)}

    logger.info(f"Truck data file: {app_settings.TRUCKS_DATA_FILE}")
    return app


app = create_app()

# For running programmatically (optional)
if __name__ == "__main__":
    logger.info(f"Starting Uvicorn server on http://{settings.HOST}:{settings.PORT}")
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
