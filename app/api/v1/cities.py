"""City submission API: start a weather processing job."""

import asyncio
from typing import Optional

from fastapi import APIRouter, Body, HTTPException

from app.exceptions import InvalidRequest, PipelineError
from app.pipeline.intake import CityRequest

router = APIRouter()

# Set by main.py during lifespan
_services = None


def set_services(services):
    global _services
    _services = services


@router.post("/cities", status_code=202)
async def submit_city(request: Optional[CityRequest] = Body(None)):
    """Accept a city and start the enrichment pipeline.

    Returns 202 with the job id and the status URL to poll.
    """
    if _services is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")
    if request is None:
        raise InvalidRequest("Request body is required")

    budget = _services.settings.intake_budget_seconds
    try:
        result = await asyncio.wait_for(_services.intake.consume(request), timeout=budget)
    except asyncio.TimeoutError:
        raise PipelineError(f"City intake exceeded its {budget:.0f}s budget")

    record = result.record
    return {
        "message": "City processing started",
        "cityId": record.job_id,
        "cityName": record.city_name,
        "status": record.status.value,
        "timestamp": record.updated_at.isoformat(),
        "statusUrl": f"/status/{record.job_id}",
    }
