from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = Field()
    state: str = Field(description="Scheduler state: unconfigured, idle, polling or paused")
    station_id: str = Field()
    uptime: str = Field(description="Time since updates started, H:MM:SS")
    records: int = Field(ge=0, description="Observations known to the deduplication index")
    version: str = Field()

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "status": "ok",
                    "state": "idle",
                    "station_id": "ISOLIN267",
                    "uptime": "5:02:17",
                    "records": 20736,
                    "version": "0.1.0",
                }
            ]
        }
    }
