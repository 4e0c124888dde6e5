from fastapi import APIRouter, Request

import structlog
from ...schemas.health import HealthResponse

router = APIRouter()
logger = structlog.get_logger()


@router.get(
    "/",
    response_model=HealthResponse,
    summary="Health status",
    responses={
        200: {
            "description": "Engine is up",
            "content": {
                "application/json": {
                    "example": {
                        "status": "ok",
                        "state": "idle",
                        "station_id": "ISOLIN267",
                        "uptime": "5:02:17",
                        "records": 20736,
                        "version": "0.1.0",
                    }
                }
            },
        }
    },
)
def health(request: Request) -> HealthResponse:
    settings = request.app.state.settings
    engine = request.app.state.engine
    status = "ok" if engine.poll_state.running else "stopped"
    logger.info("health_check", state=engine.state.value)
    return HealthResponse(
        status=status,
        state=engine.state.value,
        station_id=engine.station_id or "",
        uptime=engine.uptime(),
        records=len(engine.index),
        version=settings.app_version,
    )
