from typing import Optional

from contextlib import asynccontextmanager
from fastapi import FastAPI

from ..config import Settings
from ..logging import init_logging
from ..services.engine import IngestionEngine
from ..services.events import EventBus, EventLog
from .routes import health, ingest


def create_app(settings: Optional[Settings] = None, engine: Optional[IngestionEngine] = None) -> FastAPI:
    """Build the HTTP surface around one ingestion engine.

    Without an explicit `engine` one is built from `settings`, which opens
    the store and validates the station id and API key; failures there are
    fatal and propagate. The poll loop runs inside the app lifespan when
    `settings.scheduler_enabled` is set.
    """
    settings = settings or Settings()
    init_logging(settings.log_level, settings.station_id)

    event_log = EventLog(maxlen=settings.status_history)
    if engine is None:
        events = EventBus()
        events.subscribe(event_log)
        engine = IngestionEngine.from_settings(settings, events=events)
    else:
        engine.events.subscribe(event_log)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.scheduler_enabled:
            app.state.engine.launch()
        yield
        await app.state.engine.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Engine health and uptime"},
            {"name": "ingest", "description": "Manual fetches, status history and stored observations"},
        ],
    )

    app.include_router(health.router, prefix="/health", tags=["health"])
    app.include_router(ingest.router, prefix="/v1", tags=["ingest"])

    app.state.settings = settings
    app.state.engine = engine
    app.state.event_log = event_log

    return app


if __name__ == "__main__":
    import uvicorn

    s = Settings()
    uvicorn.run(create_app(s), host=s.host, port=s.port)
