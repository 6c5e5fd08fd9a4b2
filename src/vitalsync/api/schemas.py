"""Request / response models shared across API route modules."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class IngestResponse(BaseModel):
    ok: bool = True
    id: str


class KeyResponse(BaseModel):
    """Plaintext device key, returned exactly once."""

    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(serialization_alias="apiKey")


class SimulateRequest(BaseModel):
    """Manual reading entered from the dashboard."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    heart_rate: float | None = Field(None, alias="heartRate")
    spo2: float | None = Field(None, alias="spO2")
    emotion: str | None = None
