"""Job status polling endpoint."""

from fastapi import APIRouter, HTTPException

from app.pipeline.status import get_status

router = APIRouter()

# Set by main.py during lifespan
_services = None


def set_services(services):
    global _services
    _services = services


@router.get("/status/{city_id}")
async def get_city_status(city_id: str):
    """Latest snapshot of a job: status, weather data, description or error."""
    if _services is None:
        raise HTTPException(status_code=503, detail="Pipeline not initialized")

    snapshot = await get_status(_services.store, city_id)
    return snapshot.to_response()
