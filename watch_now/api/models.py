"""Pydantic models for the status API."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from ..checks.base import CheckResult, overall_status


class ResultModel(BaseModel):
    name: str
    type: str
    status: str
    message: str
    metadata: dict[str, Any] = {}
    timestamp: str
    duration_ms: float

    @classmethod
    def from_result(cls, result: CheckResult) -> ResultModel:
        return cls(**result.to_dict())


class StatusResponse(BaseModel):
    timestamp: str
    services: list[ResultModel]
    checks: list[ResultModel]
    overall: str
    results: dict[str, ResultModel]


class HealthResponse(BaseModel):
    status: str
    timestamp: int


def build_status(results: dict[str, CheckResult]) -> StatusResponse:
    """Group a snapshot into services / checks with an overall status."""
    models = {name: ResultModel.from_result(r) for name, r in sorted(results.items())}
    return StatusResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        services=[models[n] for n, r in sorted(results.items()) if r.is_service],
        checks=[models[n] for n, r in sorted(results.items()) if not r.is_service],
        overall=overall_status(results).value,
        results=models,
    )
