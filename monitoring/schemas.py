"""
Monitoring - Request Schemas.

Pydantic models for the administrative request bodies and
query strings. Validation happens before any state is touched.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class ThresholdUpdate(BaseModel):
    """
    Partial alert-threshold update.

    Accepts snake_case field names or the camelCase keys used by
    existing admin clients (memoryUsage, cpuUsage, responseTime,
    errorRate). Unknown keys are rejected.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    memory_percent: Optional[float] = Field(default=None, alias="memoryUsage", ge=0, le=100)
    cpu_percent: Optional[float] = Field(default=None, alias="cpuUsage", ge=0, le=100)
    response_time_ms: Optional[float] = Field(default=None, alias="responseTime", gt=0)
    error_rate_percent: Optional[float] = Field(default=None, alias="errorRate", ge=0, le=100)

    def changes(self) -> Dict[str, float]:
        """Only the fields that were provided."""
        return self.model_dump(exclude_none=True)


class AutoRecoveryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: StrictBool


class AuditEventQuery(BaseModel):
    """Filters for the audit event listing."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    level: Optional[str] = None
    category: Optional[str] = None
    actor_id: Optional[str] = Field(default=None, alias="actorId")
    ip: Optional[str] = None
    risk_level: Optional[str] = Field(default=None, alias="riskLevel")
    limit: Optional[int] = Field(default=None, ge=1, le=1000)

    def filters(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class HistoryQuery(BaseModel):
    model_config = ConfigDict(extra="ignore")

    limit: int = Field(default=50, ge=1, le=1000)
