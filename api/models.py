"""
API response models for the Secret Notes JSON endpoints.

These Pydantic v2 models define the HTTP transport contract for api/. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation.
"""

from pydantic import BaseModel, ConfigDict


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
