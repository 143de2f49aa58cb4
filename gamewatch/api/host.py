from fastapi import APIRouter

from gamewatch.models.host import HostMetricsSnapshot
from gamewatch.services import metrics_cache

router = APIRouter()


@router.get("/metrics", response_model=HostMetricsSnapshot, summary="Host metrics")
async def host_metrics() -> HostMetricsSnapshot:
    """
    Return the current host metrics from node-exporter.

    The endpoint always answers 200. If node-exporter could not be scraped,
    the body has is_valid=false and error_message explains why; the numeric
    fields must then be ignored by clients.
    """
    return await metrics_cache.get_metrics_cache().get_metrics()
